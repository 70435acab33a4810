"""
Pydantic models for the HTTP API.

Domain objects live in features.newfeatures.models; these are the shapes
sent over the wire.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from features.newfeatures.models import FeatureDescriptor
from features.newfeatures.notice import NewFeaturesNotice


class FeatureItem(BaseModel):
    id: str
    module: str
    version: str
    desc: str
    html: str
    link: str | None = None

    @classmethod
    def from_descriptor(cls, f: FeatureDescriptor) -> FeatureItem:
        return cls(
            id=f.id,
            module=f.module,
            version=str(f.version),
            desc=f.desc,
            html=f.html,
            link=f.resolved_link,
        )


class NoticeOut(BaseModel):
    header: str
    versions: list[str]
    features: list[FeatureItem]
    seen_url: str

    @classmethod
    def from_notice(cls, notice: NewFeaturesNotice) -> NoticeOut:
        return cls(
            header=notice.header,
            versions=notice.versions,
            features=[FeatureItem.from_descriptor(f) for f in notice.features],
            seen_url=notice.seen_url,
        )


class NoticeResponse(BaseModel):
    notice: NoticeOut | None = None


class PendingVersion(BaseModel):
    module: str
    version: str


class PendingResponse(BaseModel):
    user: str
    pending: list[PendingVersion]


class SeenRequest(BaseModel):
    module: str | None = None
    version: Decimal | None = None


class UnseenRequest(BaseModel):
    module: str


class AcknowledgedResponse(BaseModel):
    user: str
    acknowledged: dict[str, str]
