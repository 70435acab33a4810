"""
Data models for the new-features notices.

FeatureDescriptor is one "what's new" entry for a (module, version);
ModuleVersionInfo describes a module we announce features for.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from features.newfeatures.ladder import parse_version


class ViewerRole(str, Enum):
    """Access tier of the viewing user. Values are the on-disk flag names."""
    PRIMARY_ADMIN = "master"
    RESELLER_ADMIN = "reseller"
    TENANT_OWNER = "domain"

    @classmethod
    def parse(cls, value: str | None) -> ViewerRole | None:
        if not value:
            return None
        value = value.strip().lower()
        if value == "owner":
            return cls.TENANT_OWNER
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown viewer role: {value!r}") from None


class ServerStatus(str, Enum):
    NOHOST = "nohost"
    DOWN = "down"
    PAUSED = "paused"
    NOSSH = "nossh"
    ALIVE = "alive"
    NOSSHLOGIN = "nosshlogin"
    NOWEBMINLOGIN = "nowebminlogin"
    NOWEBMIN = "nowebmin"
    DOWNWEBMIN = "downwebmin"
    NOVIRT = "novirt"
    VIRT = "virt"


@dataclass(frozen=True)
class FeatureDescriptor:
    """A single new feature, as read from its (module, version) directory."""
    id: str
    module: str
    version: Decimal
    desc: str = ""
    html: str = ""
    visibility: frozenset[ViewerRole] = frozenset()
    min_host_version: Decimal | None = None
    link: str | None = None
    managers: tuple[str, ...] = ()
    # Set at render time only
    resolved_link: str | None = None

    def visible_to(self, role: ViewerRole) -> bool:
        return role in self.visibility


@dataclass
class ModuleVersionInfo:
    name: str
    version: Decimal
    first_version: Decimal | None = None
    desc: str = ""

    def __post_init__(self):
        self.version = parse_version(self.version)
        if self.first_version is not None:
            self.first_version = parse_version(self.first_version)


@dataclass
class VirtualDomain:
    """A hosted domain, as far as link substitution needs it."""
    id: str
    dom: str
    user: str = ""
    owner: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def template_values(self) -> dict[str, str]:
        values = {k.upper(): str(v) for k, v in self.extra.items()}
        values.update({"ID": self.id, "DOM": self.dom, "USER": self.user})
        return values


@dataclass
class ManagedServer:
    """A system managed by the multi-server manager."""
    id: str
    host: str
    manager: str = ""
    status: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def template_values(self) -> dict[str, str]:
        values = {k.upper(): str(v) for k, v in self.extra.items()}
        values.update({"ID": self.id, "HOST": self.host, "MANAGER": self.manager})
        return values
