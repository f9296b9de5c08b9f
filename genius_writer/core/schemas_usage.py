"""Schemas for plans, limits, usage counters and entitlements."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from genius_writer.core.schemas_documents import PlanTier, StoredModel, utcnow

# -1 means unlimited
UNLIMITED = -1


class PlanLimits(BaseModel):
    """Declared limits of a plan."""
    ai_generations: int
    documents_per_month: int
    storage_gb: float
    export_formats: list[str]
    words_per_month: int
    images_per_month: int
    brands: int


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits(
        ai_generations=10,
        documents_per_month=5,
        storage_gb=0.1,
        export_formats=["PDF"],
        words_per_month=2_000,
        images_per_month=0,
        brands=1,
    ),
    PlanTier.PRO: PlanLimits(
        ai_generations=100,
        documents_per_month=50,
        storage_gb=5,
        export_formats=["PDF", "DOCX", "HTML"],
        words_per_month=50_000,
        images_per_month=50,
        brands=3,
    ),
    PlanTier.AGENCY: PlanLimits(
        ai_generations=500,
        documents_per_month=200,
        storage_gb=50,
        export_formats=["PDF", "DOCX", "HTML", "MD", "TXT"],
        words_per_month=200_000,
        images_per_month=200,
        brands=10,
    ),
    PlanTier.ENTERPRISE: PlanLimits(
        ai_generations=UNLIMITED,
        documents_per_month=UNLIMITED,
        storage_gb=500,
        export_formats=["PDF", "DOCX", "HTML", "MD", "TXT", "JSON"],
        words_per_month=UNLIMITED,
        images_per_month=UNLIMITED,
        brands=UNLIMITED,
    ),
}

# Feature -> plans that include it. Features not listed are open to all plans.
FEATURE_ACCESS: dict[str, frozenset[PlanTier]] = {
    "collaboration": frozenset({PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "advanced-analytics": frozenset({PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "api-access": frozenset({PlanTier.ENTERPRISE}),
    "priority-support": frozenset({PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "brand-voice": frozenset({PlanTier.PRO, PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "all-templates": frozenset({PlanTier.PRO, PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "document-versions": frozenset({PlanTier.PRO, PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "export-docx": frozenset({PlanTier.PRO, PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "export-html": frozenset({PlanTier.PRO, PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "export-md": frozenset({PlanTier.AGENCY, PlanTier.ENTERPRISE}),
    "export-txt": frozenset({PlanTier.AGENCY, PlanTier.ENTERPRISE}),
}


def within_limit(used: int | float, limit: int | float) -> bool:
    return limit == UNLIMITED or used < limit


class GateAction(str, Enum):
    """Actions the usage gate can check."""
    GENERATE_TEXT = "generate_text"
    GENERATE_IMAGE = "generate_image"
    CREATE_DOCUMENT = "create_document"
    EXPORT = "export"


class UsageCounters(BaseModel):
    """Server-side usage this billing period."""
    ai_generations: int = 0
    documents: int = 0
    storage_bytes: int = 0


class Entitlements(BaseModel):
    """Entitlement state reported by the billing backend."""
    plan: PlanTier = PlanTier.FREE
    limits: PlanLimits = Field(default_factory=lambda: PLAN_LIMITS[PlanTier.FREE])
    usage: UsageCounters = Field(default_factory=UsageCounters)
    fetched_at: datetime = Field(default_factory=utcnow)


class FeatureCheck(BaseModel):
    """Response of GET /usage/check/{feature}."""
    feature: str
    has_access: bool
    user_plan: PlanTier
    required_plans: list[str]
    needs_upgrade: bool


class LocalUsage(StoredModel):
    """Words/images generated locally this month."""
    words_used: int = 0
    images_used: int = 0
    last_reset: datetime = Field(default_factory=utcnow)
