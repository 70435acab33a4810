"""
Version ladder — steps a module's version down one publishable unit.

The core product publishes features per hundredth of a version (7.20, 7.19,
...), plugins and the server-manager variant per tenth (3.4, 3.3, ...).
Versions are Decimals so repeated steps land exactly on each published
version and the descent always reaches zero.
"""

from __future__ import annotations

import re
from decimal import ROUND_DOWN, ROUND_FLOOR, Decimal, InvalidOperation
from typing import Iterable

FINE_PLACES = 2
COARSE_PLACES = 1
LEGACY_CORE_PREFIX = "server-manager"

_VERSION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)")


class UnknownModuleError(ValueError):
    """Raised when the ladder has no stepping convention for a module."""


def parse_version(value: object) -> Decimal:
    """Turn ``"7.20"``, ``"7.20.1"``, ``7.2`` or a Decimal into a Decimal.

    Only the leading numeric part of a string counts, so ``"7.20.1"`` is 7.20.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid version: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    m = _VERSION_RE.match(str(value))
    if not m:
        raise ValueError(f"Invalid version: {value!r}")
    try:
        return Decimal(m.group(1))
    except InvalidOperation:
        raise ValueError(f"Invalid version: {value!r}") from None


def format_version(version: Decimal) -> str:
    """Canonical text form: no exponent, no trailing zeros (7.20 -> "7.2")."""
    return format(version.normalize(), "f")


def base_version(version: Decimal) -> str:
    """Version truncated to two decimals, always printed with two (7.2 -> "7.20")."""
    return str(version.quantize(Decimal("0.01"), rounding=ROUND_DOWN))


def previous_version(version: Decimal, places: int) -> Decimal:
    """``floor(version * 10**places - 1) / 10**places``."""
    scaled = (version.scaleb(places)).to_integral_value(rounding=ROUND_FLOOR)
    return (scaled - 1).scaleb(-places)


class VersionLadder:
    """Knows which stepping convention each module uses."""

    def __init__(self, core_module: str, other_modules: Iterable[str] = ()):
        self.core_module = core_module
        self.other_modules = set(other_modules)

    def places_for(self, module: str) -> int:
        if module == self.core_module:
            if module.startswith(LEGACY_CORE_PREFIX):
                return COARSE_PLACES
            return FINE_PLACES
        if module in self.other_modules:
            return COARSE_PLACES
        raise UnknownModuleError(f"No version stepping known for module {module!r}")

    def previous(self, version: Decimal | float | str, module: str) -> Decimal:
        return previous_version(parse_version(version), self.places_for(module))
