"""Server-side usage ledger for the reference backend.

In-memory per-caller counters for the current month. Authoritative quota
enforcement happens here; the client gate only mirrors it.
"""

from collections import defaultdict
from datetime import datetime
from typing import Callable

from genius_writer.core.errors import QuotaExceededError
from genius_writer.core.logging import get_logger
from genius_writer.core.schemas_documents import PlanTier, utcnow
from genius_writer.core.schemas_usage import (
    FEATURE_ACCESS,
    PLAN_LIMITS,
    Entitlements,
    FeatureCheck,
    UsageCounters,
    within_limit,
)

logger = get_logger(__name__)


class UsageLedger:
    """Counts generations per caller and answers entitlement queries."""

    def __init__(
        self,
        default_plan: PlanTier | str = PlanTier.FREE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.default_plan = PlanTier.parse(str(getattr(default_plan, "value", default_plan)))
        self.clock = clock
        self._plans: dict[str, PlanTier] = {}
        self._counters: dict[tuple[str, str], UsageCounters] = defaultdict(UsageCounters)

    def _period(self) -> str:
        now = self.clock()
        return f"{now.year:04d}-{now.month:02d}"

    def set_plan(self, caller: str, plan: PlanTier) -> None:
        self._plans[caller] = plan

    def plan_for(self, caller: str) -> PlanTier:
        return self._plans.get(caller, self.default_plan)

    def counters(self, caller: str) -> UsageCounters:
        return self._counters[(caller, self._period())]

    def entitlements(self, caller: str) -> Entitlements:
        plan = self.plan_for(caller)
        return Entitlements(
            plan=plan,
            limits=PLAN_LIMITS[plan],
            usage=self.counters(caller).model_copy(),
            fetched_at=self.clock(),
        )

    def check_generation(self, caller: str) -> None:
        """
        Raises:
            QuotaExceededError: The caller used up this month's generations
        """
        plan = self.plan_for(caller)
        limit = PLAN_LIMITS[plan].ai_generations
        used = self.counters(caller).ai_generations
        if not within_limit(used, limit):
            logger.info(f"Generation quota exhausted for caller on plan {plan.value}: {used}/{limit}")
            raise QuotaExceededError(
                f"Monthly generation limit of {limit} reached",
                status_code=429,
                limit=limit,
                current=used,
                plan=plan.value,
            )

    def record_generation(self, caller: str) -> None:
        self.counters(caller).ai_generations += 1

    def check_feature(self, caller: str, feature: str) -> FeatureCheck:
        plan = self.plan_for(caller)
        allowed = FEATURE_ACCESS.get(feature)
        has_access = allowed is None or plan in allowed
        required = sorted(p.value for p in allowed) if allowed is not None else ["All plans"]
        return FeatureCheck(
            feature=feature,
            has_access=has_access,
            user_plan=plan,
            required_plans=required,
            needs_upgrade=not has_access,
        )
