"""
Feature store reader — lists the feature descriptors published for one
version of a module.

Layout:
  <core dir>/<version>/<id>                       — core product, any number of core dirs
  <modules root>/<module>/newfeatures/<version>/<id> — plugins

Each <id> file holds key=value lines (desc, html, master, reseller, domain,
link, managers, webmin).
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from pathlib import Path
from typing import Iterable

from features.newfeatures.ladder import format_version, parse_version
from features.newfeatures.models import FeatureDescriptor, ViewerRole
from utils.kvfile import read_kv_file

log = logging.getLogger(__name__)

_ID_PREFIX_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")

# On-disk visibility flags; "owner" is the server-manager name for tenant owners
_ROLE_FLAGS = {
    "master": ViewerRole.PRIMARY_ADMIN,
    "reseller": ViewerRole.RESELLER_ADMIN,
    "domain": ViewerRole.TENANT_OWNER,
    "owner": ViewerRole.TENANT_OWNER,
}


class MalformedFeatureError(ValueError):
    """A feature entry that cannot be turned into a descriptor."""


def id_sort_key(feature_id: str) -> Decimal:
    """Numeric leading part of an id; ids without one sort as 0."""
    m = _ID_PREFIX_RE.match(feature_id)
    return Decimal(m.group(1)) if m else Decimal(0)


def version_dirnames(version: Decimal) -> list[str]:
    """Directory names a version may be published under ("7.20" and "7.2")."""
    names = [str(version), format_version(version)]
    return list(dict.fromkeys(names))


def parse_feature(feature_id: str, data: dict[str, str],
                  module: str, version: Decimal) -> FeatureDescriptor:
    visibility = frozenset(
        role for flag, role in _ROLE_FLAGS.items()
        if data.get(flag, "").strip() not in ("", "0")
    )
    min_host = data.get("webmin", "").strip()
    try:
        min_host_version = parse_version(min_host) if min_host else None
    except ValueError as e:
        raise MalformedFeatureError(f"{feature_id}: {e}") from e
    return FeatureDescriptor(
        id=feature_id,
        module=module,
        version=version,
        desc=data.get("desc", ""),
        html=data.get("html", ""),
        visibility=visibility,
        min_host_version=min_host_version,
        link=data.get("link") or None,
        managers=tuple(data.get("managers", "").split()),
    )


class FeatureStore:
    """Reads feature descriptors from the directory-per-version store."""

    def __init__(self, core_module: str, core_dirs: Iterable[Path | str], modules_root: Path | str):
        self.core_module = core_module
        self.core_dirs = [Path(d) for d in core_dirs]
        self.modules_root = Path(modules_root)

    def base_dirs(self, module: str) -> list[Path]:
        if module == self.core_module:
            return list(self.core_dirs)
        return [self.modules_root / module / "newfeatures"]

    def version_dirs(self, module: str, version: Decimal) -> list[Path]:
        """Existing directories holding features for this module and version."""
        found: list[Path] = []
        seen: set[Path] = set()
        for base in self.base_dirs(module):
            for name in version_dirnames(version):
                path = base / name
                if not path.is_dir():
                    continue
                real = path.resolve()
                if real in seen:
                    continue
                seen.add(real)
                found.append(path)
        return found

    def list_features(self, module: str, version: Decimal) -> list[FeatureDescriptor]:
        """All features for exactly this version, newest (highest id) first.

        Missing directories give an empty list. Entries that cannot be read
        or parsed are skipped.
        """
        features: list[FeatureDescriptor] = []
        for vdir in self.version_dirs(module, version):
            for entry in sorted(vdir.iterdir(), key=lambda p: p.name):
                if entry.name.startswith("."):
                    continue
                try:
                    if not entry.is_file():
                        raise MalformedFeatureError(f"{entry.name}: not a regular file")
                    data = read_kv_file(entry)
                    features.append(parse_feature(entry.name, data, module, version))
                except (OSError, UnicodeDecodeError, MalformedFeatureError) as e:
                    log.warning("Skipping feature entry %s: %s", entry, e)

        log.debug("Found %d features for %s %s", len(features), module, version)
        return sorted(features, key=lambda f: id_sort_key(f.id), reverse=True)
