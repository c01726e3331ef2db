"""IRC numeric reply registry.

Maps three-digit reply codes to their conventional symbolic names, e.g.
001 -> RPL_WELCOME. The tables are shipped as YAML rule sets, one per
specification or server family, and merged in order: a later rule set wins
when two of them disagree on a code.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import functools
import importlib.resources
from collections.abc import Iterable, Mapping

import structlog
import yaml

logger = structlog.get_logger("netirc.numerics")

# merged in this order; later rule sets override earlier ones
DEFAULT_RULESETS = ("rfc1459", "rfc2812", "isupport", "hybrid", "ircu", "hyperion")


class NumericRegistry:
    """A read-only lookup table from numeric reply codes to symbolic names."""

    def __init__(self, tables: Iterable[Mapping[int, str]] = ()) -> None:
        merged: dict[int, str] = {}
        for table in tables:
            merged.update({int(code): str(name) for code, name in table.items()})
        self._names = merged
        # several codes may share a name, e.g. RPL_BOUNCE; the lowest one wins
        self._codes: dict[str, int] = {}
        for code, name in sorted(merged.items()):
            self._codes.setdefault(name, code)

    @classmethod
    def from_rulesets(cls, names: Iterable[str] = DEFAULT_RULESETS) -> NumericRegistry:
        """Load and merge the named YAML rule sets shipped in netirc/data."""
        tables = []
        for name in names:
            resource = importlib.resources.files("netirc") / "data" / f"{name}.yaml"
            with resource.open(encoding="utf-8") as yamlfile:
                table = yaml.safe_load(yamlfile.read()) or {}
            logger.debug("Loaded numeric rule set", ruleset=name, numerics=len(table))
            tables.append(table)
        return cls(tables)

    def resolve(self, code: int) -> str | None:
        """Return the symbolic name for a numeric, or None if it is unknown."""
        return self._names.get(code)

    def code(self, name: str) -> int | None:
        """Return the numeric for a symbolic name, or None if it is unknown."""
        return self._codes.get(name)

    def __contains__(self, code: object) -> bool:
        return code in self._names

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        """Return a user-readable description of the registry."""
        return f"<{self.__class__.__name__} ({len(self)} numerics)>"


@functools.lru_cache(maxsize=None)
def default_registry() -> NumericRegistry:
    """Return the process-wide registry, built from the default rule sets on first use."""
    return NumericRegistry.from_rulesets()
