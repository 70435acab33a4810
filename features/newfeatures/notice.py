"""
Notice builder — everything a page needs to show the "new features" box:
a header naming the new module versions, the features themselves with
resolved links, and where to post "mark as seen".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable

from features.newfeatures.hosts import HostCapabilities
from features.newfeatures.ladder import base_version
from features.newfeatures.models import FeatureDescriptor, ModuleVersionInfo
from features.newfeatures.resolver import FeatureBatch, NoveltyResolver, presentation_order
from utils.kvfile import read_kv_file_if_exists

log = logging.getLogger(__name__)

NF_HEADER = "New features in {}"
NF_AND = "{} and {}"
NF_DATE = "(installed on {})"
SEEN_URL = "/newfeatures/seen"


@dataclass
class NewFeaturesNotice:
    header: str
    versions: list[str] = field(default_factory=list)
    features: list[FeatureDescriptor] = field(default_factory=list)
    seen_url: str = SEEN_URL


def join_versions(versions: list[str]) -> str:
    """Join as: A / A and B / A, B and C."""
    if len(versions) <= 1:
        return ", ".join(versions)
    return NF_AND.format(", ".join(versions[:-1]), versions[-1])


def install_date(install_times_file: Path | str | None, version: Decimal) -> str | None:
    """Date the given core version was installed, if recorded."""
    if not install_times_file:
        return None
    try:
        itimes = read_kv_file_if_exists(install_times_file)
    except UnicodeDecodeError as e:
        log.warning("Cannot read install times from %s: %s", install_times_file, e)
        return None
    stamp = itimes.get(base_version(version), "").strip()
    if not stamp:
        return None
    try:
        return datetime.fromtimestamp(int(stamp)).strftime("%Y-%m-%d")
    except (ValueError, OverflowError, OSError):
        log.warning("Bad install time %r for version %s", stamp, version)
        return None


def describe_versions(batches: Iterable[FeatureBatch], modules: list[ModuleVersionInfo],
                      core_module: str, core_label: str,
                      install_times_file: Path | str | None = None) -> list[str]:
    """One description per module: its newest version that has features to show."""
    by_name = {m.name: m for m in modules}
    described: set[str] = set()
    versions = []
    for batch in batches:
        if not batch.features or batch.module in described:
            continue
        described.add(batch.module)
        minfo = by_name.get(batch.module)
        if batch.module == core_module:
            desc = core_label
        else:
            desc = minfo.desc if minfo and minfo.desc else batch.module
        text = f"{desc} {batch.version}"
        if batch.module == core_module and minfo:
            when = install_date(install_times_file, minfo.version)
            if when:
                text += " " + NF_DATE.format(when)
        versions.append(text)
    return versions


def build_notice(resolver: NoveltyResolver, user: str, modules: Iterable[ModuleVersionInfo],
                 host: HostCapabilities, host_version: Decimal | None, target: Any = None,
                 *, core_label: str, install_times_file: Path | str | None = None,
                 seen_url: str = SEEN_URL) -> NewFeaturesNotice | None:
    """Build the notice for ``user``, or None if there is nothing new to show.

    Failing to read the ledger or the feature store also means nothing to
    show; the notice is informational only.
    """
    modules = list(modules)
    try:
        batches = resolver.collect_batches(user, modules, host.current_viewer_role(), host_version)
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Could not work out new features for %s: %s", user, e)
        return None

    features = presentation_order(batches)
    if not features:
        return None

    versions = describe_versions(
        batches, modules, resolver.ladder.core_module, core_label, install_times_file,
    )
    return NewFeaturesNotice(
        header=NF_HEADER.format(join_versions(versions)),
        versions=versions,
        features=resolver.resolve_links(features, host, target),
        seen_url=seen_url,
    )
