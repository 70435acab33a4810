"""
Host capabilities — what the new-features code needs from the application
it runs inside.

Two flavors exist: the virtual-server control panel, which links features to
hosted domains, and the server manager, which links them to managed systems.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Mapping
from urllib.parse import quote

from features.newfeatures.models import (
    FeatureDescriptor,
    ManagedServer,
    ServerStatus,
    ViewerRole,
    VirtualDomain,
)

_PLACEHOLDER_RE = re.compile(r"\$\{(\w+)\}|\$([A-Z_][A-Z0-9_]*)")

# Lower is preferred when picking a server to link to
STATUS_ORDER = {
    ServerStatus.NOHOST: 0,
    ServerStatus.DOWN: 10,
    ServerStatus.PAUSED: 15,
    ServerStatus.NOSSH: 20,
    ServerStatus.ALIVE: 25,
    ServerStatus.NOSSHLOGIN: 30,
    ServerStatus.NOWEBMINLOGIN: 40,
    ServerStatus.NOWEBMIN: 50,
    ServerStatus.DOWNWEBMIN: 60,
    ServerStatus.NOVIRT: 70,
    ServerStatus.VIRT: 80,
}
_UNKNOWN_STATUS_ORDER = 1000


def substitute_template(template: str, values: Mapping[str, str]) -> str:
    """Replace ``${KEY}`` and ``$KEY`` with URL-quoted values.

    Placeholders with no matching value are left as they are.
    """
    def repl(m: re.Match) -> str:
        key = (m.group(1) or m.group(2)).upper()
        if key not in values:
            return m.group(0)
        return quote(str(values[key]), safe="")
    return _PLACEHOLDER_RE.sub(repl, template)


def status_order(status: str) -> int:
    try:
        return STATUS_ORDER[ServerStatus(status)]
    except ValueError:
        return _UNKNOWN_STATUS_ORDER


def matches_manager(server: ManagedServer, managers: Iterable[str]) -> bool:
    """True if the server's manager kind is one of ``managers`` (or none are given)."""
    managers = list(managers)
    return not managers or server.manager in managers


def rank_servers(servers: Iterable[ManagedServer]) -> list[ManagedServer]:
    return sorted(servers, key=lambda s: status_order(s.status))


class HostCapabilities:
    """Interface implemented by each host flavor."""

    user: str = ""
    module_name: str = ""

    def current_viewer_role(self) -> ViewerRole | None:
        raise NotImplementedError

    def default_target_entity(self) -> Any:
        raise NotImplementedError

    def resolve_link(self, template: str, entity: Any) -> str:
        raise NotImplementedError

    def target_for(self, feature: FeatureDescriptor, default: Any) -> Any:
        """Entity a feature's link should point at."""
        return default


class VirtualServerHost(HostCapabilities):

    def __init__(self, user: str, *, is_master: bool = False, is_reseller: bool = False,
                 domains: Iterable[VirtualDomain] = (),
                 can_edit_domain: Callable[[VirtualDomain], bool] | None = None,
                 module_name: str = "virtual-server"):
        self.user = user
        self.is_master = is_master
        self.is_reseller = is_reseller
        self.domains = list(domains)
        self.can_edit_domain = can_edit_domain or self._owns_domain
        self.module_name = module_name

    def _owns_domain(self, d: VirtualDomain) -> bool:
        return self.is_master or d.owner == self.user or d.user == self.user

    def current_viewer_role(self) -> ViewerRole:
        if self.is_master:
            return ViewerRole.PRIMARY_ADMIN
        if self.is_reseller:
            return ViewerRole.RESELLER_ADMIN
        return ViewerRole.TENANT_OWNER

    def default_target_entity(self) -> VirtualDomain | None:
        return next((d for d in self.domains if self.can_edit_domain(d)), None)

    def resolve_link(self, template: str, entity: VirtualDomain) -> str:
        return substitute_template(template, entity.template_values())


class ServerManagerHost(HostCapabilities):

    def __init__(self, user: str, *, access: Mapping[str, Any] | None = None,
                 servers: Iterable[ManagedServer] = (),
                 module_name: str = "server-manager"):
        self.user = user
        self.access = dict(access or {})
        self.servers = list(servers)
        self.module_name = module_name

    def current_viewer_role(self) -> ViewerRole:
        if self.access.get("owner"):
            return ViewerRole.TENANT_OWNER
        return ViewerRole.PRIMARY_ADMIN

    def default_target_entity(self) -> ManagedServer | None:
        return self.servers[0] if self.servers else None

    def resolve_link(self, template: str, entity: ManagedServer) -> str:
        return substitute_template(template, entity.template_values())

    def target_for(self, feature: FeatureDescriptor, default: Any) -> ManagedServer | None:
        if not feature.managers:
            return default
        candidates = [s for s in self.servers if matches_manager(s, feature.managers)]
        ranked = rank_servers(candidates)
        return ranked[0] if ranked else None
