"""
Novelty resolver — works out which module versions are new to a user, and
which of their features the user should be shown.

For each module the version ladder is walked down from the module's current
version until it reaches a version the user has acknowledged, the module's
configured first version to show, or zero.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Iterable

from features.newfeatures.hosts import HostCapabilities
from features.newfeatures.ladder import VersionLadder
from features.newfeatures.ledger import NEVER, AcknowledgementLedger
from features.newfeatures.models import FeatureDescriptor, ModuleVersionInfo, ViewerRole
from features.newfeatures.store import FeatureStore

log = logging.getLogger(__name__)

_ABSOLUTE_LINK_RE = re.compile(r"^(/|https?:)")


@dataclass
class FeatureBatch:
    """Features shown for one (module, version), after filtering."""
    module: str
    version: Decimal
    features: list[FeatureDescriptor] = field(default_factory=list)


def presentation_order(batches: Iterable[FeatureBatch]) -> list[FeatureDescriptor]:
    """Concatenate batches and reverse the whole list."""
    features = [f for batch in batches for f in batch.features]
    features.reverse()
    return features


class NoveltyResolver:

    def __init__(self, store: FeatureStore, ledger: AcknowledgementLedger, ladder: VersionLadder,
                 allowed_roles: Iterable[ViewerRole | str] | None = None, webprefix: str = ""):
        self.store = store
        self.ledger = ledger
        self.ladder = ladder
        self.allowed_roles: set[ViewerRole] | None = None
        if allowed_roles is not None:
            self.allowed_roles = set()
            for role in allowed_roles:
                try:
                    self.allowed_roles.add(ViewerRole.parse(role) if isinstance(role, str) else role)
                except ValueError:
                    log.warning("Ignoring unknown role %r in new-features allowlist", role)
        self.webprefix = webprefix

    def pending_notifications(self, user: str,
                              modules: Iterable[ModuleVersionInfo]) -> list[tuple[str, Decimal]]:
        """(module, version) pairs not yet acknowledged by ``user``.

        Modules keep the order given; within a module, newest version first.
        """
        seen = self.ledger.get_acknowledged(user)
        pending: list[tuple[str, Decimal]] = []
        for minfo in modules:
            ack = seen.get(minfo.name, NEVER)
            floor = minfo.first_version or NEVER
            ver = minfo.version
            while ver > 0 and ver > ack and ver >= floor:
                pending.append((minfo.name, ver))
                ver = self.ladder.previous(ver, minfo.name)
        return pending

    def role_allowed(self, viewer_role: ViewerRole | None) -> bool:
        if viewer_role is None or self.allowed_roles is None:
            return True
        return viewer_role in self.allowed_roles

    def collect_batches(self, user: str, modules: Iterable[ModuleVersionInfo],
                        viewer_role: ViewerRole | None,
                        host_version: Decimal | None) -> list[FeatureBatch]:
        """Filtered features per pending (module, version), in pending order.

        Once a version of a module has no features at all, older versions of
        that module are not looked at.
        """
        if not self.role_allowed(viewer_role):
            log.debug("New features are not shown to role %s", viewer_role)
            return []

        batches: list[FeatureBatch] = []
        exhausted: set[str] = set()
        for module, version in self.pending_notifications(user, modules):
            if module in exhausted:
                continue
            features = self.store.list_features(module, version)
            if not features:
                exhausted.add(module)
            if viewer_role is not None:
                features = [f for f in features if f.visible_to(viewer_role)]
            if host_version is not None:
                features = [
                    f for f in features
                    if f.min_host_version is None or host_version >= f.min_host_version
                ]
            batches.append(FeatureBatch(module, version, features))
        return batches

    def renderable_features(self, user: str, modules: Iterable[ModuleVersionInfo],
                            viewer_role: ViewerRole | None, host_version: Decimal | None,
                            target: Any = None,
                            host: HostCapabilities | None = None) -> list[FeatureDescriptor]:
        """Features to show, oldest (module, version) block first.

        This is the pending-order concatenation of all batches, reversed as a
        whole, so features inside a block come out lowest id first too.
        When ``host`` is given,
        each feature's link is resolved against ``target`` (or the host's
        default target).
        """
        batches = self.collect_batches(user, modules, viewer_role, host_version)
        features = presentation_order(batches)
        if host is not None and features:
            features = self.resolve_links(features, host, target)
        return features

    def resolve_links(self, features: list[FeatureDescriptor], host: HostCapabilities,
                      target: Any = None) -> list[FeatureDescriptor]:
        if target is None:
            target = host.default_target_entity()
        return [replace(f, resolved_link=self.link_for(f, host, target)) for f in features]

    def link_for(self, feature: FeatureDescriptor, host: HostCapabilities, target: Any) -> str | None:
        if not feature.link:
            return None
        if target is None and "${" in feature.link:
            return None
        entity = host.target_for(feature, target)
        if entity is not None:
            link = host.resolve_link(feature.link, entity)
        elif "${" in feature.link:
            return None
        else:
            link = feature.link
        if not _ABSOLUTE_LINK_RE.match(link):
            link = f"{self.webprefix}/{feature.module}/{link}"
        return link

    def acknowledge_all(self, user: str, modules: Iterable[ModuleVersionInfo]) -> dict[str, Decimal]:
        """Mark every module's features as seen up to its current version."""
        versions = {m.name: m.version for m in modules}
        if versions:
            self.ledger.acknowledge_many(user, versions)
        return versions
