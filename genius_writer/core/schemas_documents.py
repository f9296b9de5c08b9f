"""Pydantic schemas for documents, folders, drafts and the user profile.

Persisted and exported JSON uses camelCase keys so backups written by the
browser build (templateId, folderId, lastModified, deletedAt, ...) load as-is.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from genius_writer.core.tools import ToolType


def new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_tags(tags: list[str]) -> list[str]:
    """Trim tags and drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags:
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


class StoredModel(BaseModel):
    """Base for everything written to local storage."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class VersionKind(str, Enum):
    """Type of content held by a version."""
    TEXT = "text"
    IMAGE = "image"
    CV_JSON = "cv_json"


class PlanTier(str, Enum):
    """Subscription tiers."""
    FREE = "free"
    PRO = "pro"
    AGENCY = "agency"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: str | None) -> "PlanTier":
        try:
            return cls((value or "free").lower())
        except ValueError:
            return cls.FREE


# ============================================================================
# Documents
# ============================================================================


class DocumentVersion(StoredModel):
    """A previous state of a document's content."""
    id: str = Field(default_factory=new_id)
    timestamp: datetime
    content: str
    change_description: str = "Auto-save"
    kind: VersionKind = Field(default=VersionKind.TEXT, alias="type")


class Document(StoredModel):
    """A saved, versioned, soft-deletable document."""
    id: str = Field(default_factory=new_id)
    title: str
    content: str = ""
    template_id: ToolType
    folder_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    last_modified: datetime = Field(default_factory=utcnow)
    versions: list[DocumentVersion] = Field(default_factory=list)
    deleted_at: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        return normalize_tags(v)

    @property
    def is_trashed(self) -> bool:
        return self.deleted_at is not None


class Folder(StoredModel):
    """A named group of documents."""
    id: str = Field(default_factory=new_id)
    name: str
    created_at: datetime = Field(default_factory=utcnow)


class SortOrder(str, Enum):
    """Listing orders offered by the dashboard."""
    NEWEST = "newest"
    OLDEST = "oldest"
    AZ = "az"
    ZA = "za"


class DocumentQuery(BaseModel):
    """Filters for listing documents. Tag matching is ANY-of."""
    trash: bool = False
    folder_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    search: str = ""
    sort: SortOrder = SortOrder.NEWEST


# ============================================================================
# Drafts
# ============================================================================


class DraftStyle(StoredModel):
    """Style selections that travel with a draft."""
    template: str = "modern"
    accent_color: str = "#4f46e5"


class Draft(StoredModel):
    """Last-write-wins snapshot of an open tool."""
    tool_id: ToolType
    form_values: dict[str, Any] = Field(default_factory=dict)
    content: str = Field(default="", alias="documentContent")
    style: DraftStyle = Field(default_factory=DraftStyle)
    saved_at: datetime = Field(default_factory=utcnow, alias="lastSaved")

    @model_validator(mode="before")
    @classmethod
    def lift_flat_style(cls, data: Any) -> Any:
        # Browser drafts keep template and accentColor at the top level
        if isinstance(data, dict) and "style" not in data:
            flat = {k: data[k] for k in ("template", "accentColor") if data.get(k)}
            if flat:
                data = {**data, "style": flat}
        return data

    def to_storage(self) -> dict[str, Any]:
        data = super().to_storage()
        data["template"] = self.style.template
        data["accentColor"] = self.style.accent_color
        return data

    @property
    def is_empty(self) -> bool:
        return not self.form_values and not self.content


# ============================================================================
# Profile
# ============================================================================


class BrandVoice(StoredModel):
    """A named persona used as the voice hint."""
    id: str = Field(default_factory=new_id)
    name: str
    description: str

    @property
    def hint(self) -> str:
        return f"{self.name}: {self.description}"


class UserProfile(StoredModel):
    """User preferences kept locally."""
    name: str = ""
    email: str = ""
    plan: PlanTier = PlanTier.FREE
    favorites: list[ToolType] = Field(default_factory=list)
    brand_voices: list[BrandVoice] = Field(default_factory=list)

    @field_validator("plan", mode="before")
    @classmethod
    def normalize_plan(cls, v: Any) -> PlanTier:
        return v if isinstance(v, PlanTier) else PlanTier.parse(v)


# ============================================================================
# Backup
# ============================================================================

SNAPSHOT_VERSION = 1


class DataSnapshot(StoredModel):
    """Portable bundle of all four local namespaces."""
    version: int = SNAPSHOT_VERSION
    exported_at: datetime = Field(default_factory=utcnow)
    documents: list[Document] = Field(default_factory=list)
    folders: list[Folder] = Field(default_factory=list)
    profile: UserProfile = Field(default_factory=UserProfile)
    drafts: list[Draft] = Field(default_factory=list)
