"""Usage/quota gate.

An optimistic client-side check against cached entitlement. The server is
the authority; this gate only avoids requests that are known to fail. When
entitlement is unknown or older than the TTL the gate lets the action
through and leaves the rejection to the server.
"""

from datetime import datetime, timedelta
from html import escape
from typing import Callable

import httpx
from pydantic import ValidationError

from genius_writer.core.config import Settings
from genius_writer.core.exporters import ExportFormat
from genius_writer.core.errors import BackendError, NetworkError, QuotaExceededError, WriterError
from genius_writer.core.logging import get_logger
from genius_writer.core.schemas_documents import PlanTier, utcnow
from genius_writer.core.schemas_usage import (
    FEATURE_ACCESS,
    Entitlements,
    FeatureCheck,
    GateAction,
    within_limit,
)
from genius_writer.db.profile import ProfileStore
from genius_writer.services.generation_backend import error_from_response
from genius_writer.services.usage_tracking import UsageTracker

logger = get_logger(__name__)

WATERMARK_TEXT = "GENIUS WRITER FREE • PREVIEW ONLY • UPGRADE TO EXPORT"


class EntitlementClient:
    """Reads plan and usage counters from the billing backend."""

    def __init__(
        self,
        api_url: str,
        api_token: str = "",
        timeout: float | None = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "EntitlementClient":
        return cls(api_url=settings.GENERATION_API_URL, api_token=settings.GENERATION_API_TOKEN)

    async def _get(self, path: str) -> dict:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport, headers=self._headers
            ) as client:
                resp = await client.get(f"{self.api_url}{path}")
        except httpx.TransportError as e:
            raise NetworkError(f"Billing request failed: {e}") from e

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text[:500]
            raise error_from_response(resp.status_code, body)
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError(f"Malformed billing response: {e}") from e

    async def fetch(self) -> Entitlements:
        data = await self._get("/usage")
        try:
            return Entitlements.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"Unexpected entitlement payload: {e}") from e

    async def check_feature(self, feature: str) -> FeatureCheck:
        data = await self._get(f"/usage/check/{feature}")
        try:
            return FeatureCheck.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"Unexpected feature check payload: {e}") from e


class UsageGate:
    """Checks actions against cached entitlement; degrades free-tier output."""

    def __init__(
        self,
        profiles: ProfileStore,
        tracker: UsageTracker,
        client: EntitlementClient | None = None,
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.profiles = profiles
        self.tracker = tracker
        self.client = client
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock
        self._entitlements: Entitlements | None = None

    # ------------------------------------------------------------------
    # Entitlement cache
    # ------------------------------------------------------------------

    def set_entitlements(self, entitlements: Entitlements | None) -> None:
        self._entitlements = entitlements

    @property
    def entitlements(self) -> Entitlements | None:
        """Cached entitlement if it is still fresh, else None."""
        cached = self._entitlements
        if cached is None or self.clock() - cached.fetched_at > self.ttl:
            return None
        return cached

    async def refresh(self) -> Entitlements | None:
        """
        Pull entitlement from the billing backend.

        A failed refresh keeps whatever was cached.
        """
        if self.client is None:
            return self.entitlements
        try:
            entitlements = await self.client.fetch()
        except WriterError as e:
            logger.warning(f"Entitlement refresh failed, keeping cached state: {e}")
            return self.entitlements

        self._entitlements = entitlements.model_copy(update={"fetched_at": self.clock()})
        logger.debug(f"Entitlement refreshed: plan={entitlements.plan.value}")
        return self._entitlements

    @property
    def plan(self) -> PlanTier:
        """Fresh server plan if known, otherwise the locally stored profile plan."""
        entitlements = self.entitlements
        if entitlements is not None:
            return entitlements.plan
        return self.profiles.load().plan

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check(self, action: GateAction, export_format: ExportFormat | str | None = None) -> None:
        """
        Block an action the plan is known not to allow.

        Args:
            action: Action about to run
            export_format: Target format, required for GateAction.EXPORT

        Raises:
            QuotaExceededError: Entitlement is known, fresh and insufficient
            InputValidationError: Unknown export format
        """
        if action == GateAction.EXPORT:
            export_format = ExportFormat.parse(export_format or "")
        entitlements = self.entitlements
        if entitlements is None:
            logger.debug(f"Entitlement unknown or stale, allowing {action.value}")
            return

        limits = entitlements.limits
        plan = entitlements.plan.value
        local = self.tracker.load()

        if action == GateAction.GENERATE_TEXT:
            if not within_limit(entitlements.usage.ai_generations, limits.ai_generations):
                raise QuotaExceededError(
                    f"Generation limit reached for plan {plan}",
                    limit=limits.ai_generations,
                    current=entitlements.usage.ai_generations,
                    plan=plan,
                )
            if not within_limit(local.words_used, limits.words_per_month):
                raise QuotaExceededError(
                    f"Word limit reached ({limits.words_per_month} words) for plan {plan}",
                    limit=limits.words_per_month,
                    current=local.words_used,
                    plan=plan,
                )
        elif action == GateAction.GENERATE_IMAGE:
            if not within_limit(local.images_used, limits.images_per_month):
                raise QuotaExceededError(
                    f"Image limit reached ({limits.images_per_month} images) for plan {plan}",
                    limit=limits.images_per_month,
                    current=local.images_used,
                    plan=plan,
                )
        elif action == GateAction.CREATE_DOCUMENT:
            if not within_limit(entitlements.usage.documents, limits.documents_per_month):
                raise QuotaExceededError(
                    f"Document limit reached for plan {plan}",
                    limit=limits.documents_per_month,
                    current=entitlements.usage.documents,
                    plan=plan,
                )
        elif action == GateAction.EXPORT:
            if export_format.value not in limits.export_formats:
                raise QuotaExceededError(
                    f"Export to {export_format.value} is not included in plan {plan}",
                    plan=plan,
                )

    def can_export(self, export_format: ExportFormat | str) -> bool:
        """False only when fresh entitlement excludes the format."""
        entitlements = self.entitlements
        if entitlements is None:
            return True
        return ExportFormat.parse(export_format).value in entitlements.limits.export_formats

    def has_feature(self, feature: str) -> bool:
        allowed = FEATURE_ACCESS.get(feature)
        return allowed is None or self.plan in allowed

    def requires_watermark(self) -> bool:
        return self.plan == PlanTier.FREE

    def apply_watermark(self, html: str) -> str:
        """Overlay the preview watermark on free-tier render paths."""
        if not self.requires_watermark():
            return html
        return (
            '<div class="gw-watermarked" style="position: relative">'
            f"{html}"
            '<div class="gw-watermark" aria-hidden="true" '
            'style="position: absolute; inset: 0; pointer-events: none">'
            f"{escape(WATERMARK_TEXT)}</div></div>"
        )

    def record_usage(self, content: str, is_image: bool = False) -> None:
        self.tracker.track(content, is_image=is_image)
