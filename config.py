"""
Configuration — loads settings from environment / .env file.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _split(value: str, seps: str = ",") -> list[str]:
    for sep in seps[1:]:
        value = value.replace(sep, seps[0])
    return [part.strip() for part in value.split(seps[0]) if part.strip()]


# Paths
PROJECT_ROOT = Path(__file__).parent
MODULES_ROOT = Path(os.getenv("MODULES_ROOT", "/usr/share/webmin"))
SEEN_DIR = Path(os.getenv("SEEN_DIR", "/etc/webmin/virtual-server/seennewfeatures"))
INSTALL_TIMES_FILE = Path(os.getenv("INSTALL_TIMES_FILE", "/etc/webmin/virtual-server/installtimes"))
INVENTORY_FILE = Path(os.getenv("INVENTORY_FILE", str(PROJECT_ROOT / "inventory.json")))

# Host application
HOST_FLAVOR = os.getenv("HOST_FLAVOR", "virtual-server")  # or "server-manager"
CORE_MODULE = os.getenv("CORE_MODULE", HOST_FLAVOR)
CORE_MODULE_LABEL = os.getenv("CORE_MODULE_LABEL", "Virtualmin")
HOST_VERSION = os.getenv("HOST_VERSION", "2.000")
WEBPREFIX = os.getenv("WEBPREFIX", "")

# Modules whose new features are announced, besides the core module
PLUGINS = _split(os.getenv("PLUGINS", ""))
AUX_MODULES = _split(os.getenv("AUX_MODULES", "security-updates"))

# Core feature directories, one sub-directory per version
NEWFEATURES_DIRS = [
    Path(p) for p in _split(
        os.getenv("NEWFEATURES_DIRS", str(MODULES_ROOT / CORE_MODULE / "newfeatures")),
        ",:",
    )
]

# Roles allowed to see new-features notices at all
SHOW_NF = _split(os.getenv("SHOW_NF", "master,reseller,domain"))

# Optional Postgres backend for the per-user acknowledgement ledger
DATABASE_URL = os.getenv("DATABASE_URL", "")
