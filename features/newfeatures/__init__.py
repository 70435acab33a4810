"""
New-features feature — tells administrators what is new in the core product
and its plugins, and remembers what each of them has already seen.

Public API:
    from features.newfeatures import NoveltyResolver, FeatureStore, FileLedger
    from features.newfeatures import db as newfeatures_db
"""

from features.newfeatures.ladder import UnknownModuleError, VersionLadder
from features.newfeatures.ledger import AcknowledgementLedger, FileLedger
from features.newfeatures.models import FeatureDescriptor, ModuleVersionInfo, ViewerRole
from features.newfeatures.notice import NewFeaturesNotice, build_notice
from features.newfeatures.registry import ModuleRegistry
from features.newfeatures.resolver import FeatureBatch, NoveltyResolver
from features.newfeatures.store import FeatureStore

__all__ = [
    "AcknowledgementLedger",
    "FeatureBatch",
    "FeatureDescriptor",
    "FeatureStore",
    "FileLedger",
    "ModuleRegistry",
    "ModuleVersionInfo",
    "NewFeaturesNotice",
    "NoveltyResolver",
    "UnknownModuleError",
    "VersionLadder",
    "ViewerRole",
    "build_notice",
]
