"""Shared pytest fixtures."""

from decimal import Decimal
from pathlib import Path

import pytest

from features.newfeatures.ladder import VersionLadder
from features.newfeatures.ledger import FileLedger
from features.newfeatures.resolver import NoveltyResolver
from features.newfeatures.store import FeatureStore

CORE = "virtual-server"
PLUGIN = "virtualmin-nginx"
AUX = "security-updates"


def write_feature(base: Path, version: str, feature_id: str, **fields) -> Path:
    """Write one feature file under ``base/<version>/<feature_id>``."""
    vdir = base / version
    vdir.mkdir(parents=True, exist_ok=True)
    path = vdir / feature_id
    path.write_text("".join(f"{k}={v}\n" for k, v in fields.items()))
    return path


def write_module(root: Path, name: str, version: str, desc: str = "", **mconfig) -> Path:
    mdir = root / name
    mdir.mkdir(parents=True, exist_ok=True)
    info = f"version={version}\n"
    if desc:
        info += f"desc={desc}\n"
    (mdir / "module.info").write_text(info)
    if mconfig:
        (mdir / "config").write_text("".join(f"{k}={v}\n" for k, v in mconfig.items()))
    return mdir


def D(value: str) -> Decimal:
    return Decimal(value)


@pytest.fixture
def modules_root(tmp_path) -> Path:
    root = tmp_path / "modules"
    root.mkdir()
    return root


@pytest.fixture
def core_dir(modules_root) -> Path:
    return modules_root / CORE / "newfeatures"


@pytest.fixture
def plugin_dir(modules_root) -> Path:
    return modules_root / PLUGIN / "newfeatures"


@pytest.fixture
def seen_dir(tmp_path) -> Path:
    return tmp_path / "seen"


@pytest.fixture
def ladder() -> VersionLadder:
    return VersionLadder(CORE, [PLUGIN, AUX])


@pytest.fixture
def store(core_dir, modules_root) -> FeatureStore:
    return FeatureStore(CORE, [core_dir], modules_root)


@pytest.fixture
def ledger(seen_dir, ladder) -> FileLedger:
    return FileLedger(seen_dir, ladder)


@pytest.fixture
def resolver(store, ledger, ladder) -> NoveltyResolver:
    return NoveltyResolver(store, ledger, ladder, allowed_roles=["master", "reseller", "domain"])
