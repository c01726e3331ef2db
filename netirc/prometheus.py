"""Prometheus instrumentation component.

Defines the metrics kept by each IRC client (session state, messages sent and
received, CTCP requests, PINGs answered, errors by type), and serves them on
a Prometheus/OpenMetrics-compatible /metrics endpoint.

The endpoint is driven by the event loop the client runs in: connections are
accepted when the listening socket becomes readable, and each request is
answered in a short-lived thread.

Prometheus calls this a "client", and the Python module is called
"prometheus_client", but this is an HTTP server, hence PrometheusServer.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import configparser
import contextlib
import http.server
import socket
from collections.abc import Callable, Iterator
from typing import Any

import prometheus_client
import structlog
from prometheus_client import Counter, Gauge

logger = structlog.get_logger("netirc.prometheus")

PORT_DEFAULT = 9464


def client_metrics(registry: prometheus_client.CollectorRegistry, started: Callable[[], bool]) -> dict[str, Any]:
    """Create the metrics of a client in its own registry.

    started is polled at collection time, to report whether the session is up.
    """
    metrics = {
        "connected": Gauge("netirc_connected", "Whether the IRC session is started", registry=registry),
        "received": Counter("netirc_messages_received", "Count of IRC messages received", registry=registry),
        "sent": Counter("netirc_messages_sent", "Count of IRC messages sent", registry=registry),
        "ctcp": Counter("netirc_ctcp_received", "Count of CTCP requests received", registry=registry),
        "pings": Counter("netirc_pings", "Count of server PINGs answered", registry=registry),
        "errors": Counter("netirc_errors", "Count of errors and exceptions", ["type"], registry=registry),
    }
    metrics["connected"].set_function(lambda: int(started()))
    return metrics


class PrometheusServer(http.server.ThreadingHTTPServer):
    """A Prometheus HTTP server for the metrics registry of a client."""

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, config: configparser.SectionProxy, registry: prometheus_client.CollectorRegistry) -> None:
        listen_address = config.get("listen_address", fallback="::")
        if ":" in listen_address:
            self.address_family = socket.AF_INET6
        listen_port = config.getint("listen_port", fallback=PORT_DEFAULT)
        super().__init__((listen_address, listen_port), prometheus_client.MetricsHandler.factory(registry))
        # update address/port based on what bind() returned
        self.address, self.port = str(self.server_address[0]), self.server_address[1]
        self.log = logger.bind(listen_address=self.address, listen_port=self.port)

    def server_bind(self) -> None:
        """Bind to an IP address, accepting both IPv4 and IPv6 on an IPv6 socket."""
        if self.address_family == socket.AF_INET6:
            self.socket.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        super().server_bind()

    def __repr__(self) -> str:
        """Return a user-readable description of the server."""
        return f"<{self.__class__.__name__} {self.address}:{self.port}>"


@contextlib.contextmanager
def serve(
    config: configparser.SectionProxy, registry: prometheus_client.CollectorRegistry
) -> Iterator[PrometheusServer]:
    """Serve a registry from the running event loop, for the duration of the block."""
    loop = asyncio.get_running_loop()
    server = PrometheusServer(config, registry)
    server.socket.setblocking(False)
    loop.add_reader(server.socket, server.handle_request)
    server.log.info("Listening for Prometheus HTTP")
    try:
        yield server
    finally:
        loop.remove_reader(server.socket)
        server.server_close()
        server.log.info("Stopped listening for Prometheus HTTP")
