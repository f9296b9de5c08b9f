"""Usage and entitlement endpoints (reference billing backend)."""

from fastapi import APIRouter, Depends

from genius_writer.api.deps import get_usage_ledger, require_caller
from genius_writer.core.schemas_usage import Entitlements, FeatureCheck
from genius_writer.services.usage_ledger import UsageLedger

router = APIRouter()


@router.get("", response_model=Entitlements)
async def get_usage(
    caller: str = Depends(require_caller),
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> Entitlements:
    """Current plan, its limits and this month's usage counters."""
    return ledger.entitlements(caller)


@router.get("/check/{feature}", response_model=FeatureCheck)
async def check_feature(
    feature: str,
    caller: str = Depends(require_caller),
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> FeatureCheck:
    return ledger.check_feature(caller, feature)
