"""
Module registry — finds the modules whose new features are announced.

A module is available when ``<modules root>/<module>/module.info`` exists.
Its version and description come from module.info, the optional
``first_version`` floor from the module's ``config`` file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from features.newfeatures.ladder import VersionLadder, parse_version
from features.newfeatures.models import ModuleVersionInfo
from utils.kvfile import read_kv_file_if_exists

log = logging.getLogger(__name__)


class ModuleRegistry:

    def __init__(self, modules_root: Path | str, core_module: str,
                 plugins: Iterable[str] = (), aux_modules: Iterable[str] = ()):
        self.modules_root = Path(modules_root)
        self.core_module = core_module
        self.plugins = list(plugins)
        self.aux_modules = list(aux_modules)

    def module_names(self) -> list[str]:
        """Core module first, then plugins, then auxiliary modules."""
        names = [self.core_module, *self.plugins, *self.aux_modules]
        return list(dict.fromkeys(names))

    def ladder(self) -> VersionLadder:
        return VersionLadder(self.core_module, self.module_names()[1:])

    def is_available(self, module: str) -> bool:
        return (self.modules_root / module / "module.info").is_file()

    def module_info(self, module: str) -> ModuleVersionInfo:
        """Load one module's info. Raises ValueError on a bad version."""
        mdir = self.modules_root / module
        info = read_kv_file_if_exists(mdir / "module.info")
        mconfig = read_kv_file_if_exists(mdir / "config")
        first = mconfig.get("first_version", "").strip()
        return ModuleVersionInfo(
            name=module,
            version=parse_version(info.get("version", "")),
            first_version=parse_version(first) if first else None,
            desc=info.get("desc", module),
        )

    def interested_modules(self) -> list[ModuleVersionInfo]:
        modules = []
        for name in self.module_names():
            if not self.is_available(name):
                log.debug("Module %s is not installed", name)
                continue
            try:
                modules.append(self.module_info(name))
            except ValueError as e:
                log.warning("Skipping module %s: %s", name, e)
        return modules
