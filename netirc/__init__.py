"""An IRC protocol client library.

Parses IRC lines into typed messages, encodes outbound commands, handles the
CTCP sub-protocol embedded in PRIVMSG/NOTICE text, and manages the lifecycle
of a client connection, including PING/PONG keep-alive.
"""

# Copyright © Faidon Liambotis
# Copyright © Wikimedia Foundation, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from ._version import __version__
from .client import Context, IRCClient, connect, session
from .codec import parse, to_wire
from .ctcp import CTCP
from .errors import ArityError, IRCConnectionLost, IRCError, IRCStateError
from .main import run
from .message import Message, Prefix
from .numerics import NumericRegistry, default_registry

__all__ = [
    "__version__",
    "ArityError",
    "CTCP",
    "Context",
    "IRCClient",
    "IRCConnectionLost",
    "IRCError",
    "IRCStateError",
    "Message",
    "NumericRegistry",
    "Prefix",
    "connect",
    "default_registry",
    "parse",
    "run",
    "session",
    "to_wire",
]
