"""Tests for the usage gate, local usage tracking and entitlement refresh."""

import httpx
import pytest

from genius_writer.core.errors import Affordance, InputValidationError, QuotaExceededError
from genius_writer.core.exporters import ExportFormat
from genius_writer.core.schemas_documents import PlanTier
from genius_writer.core.schemas_usage import PLAN_LIMITS, Entitlements, GateAction, UsageCounters
from genius_writer.db.profile import ProfileStore
from genius_writer.db.storage import MemoryStorage
from genius_writer.services.usage_gate import WATERMARK_TEXT, EntitlementClient, UsageGate
from genius_writer.services.usage_tracking import UsageTracker


def entitlements(plan: PlanTier, fetched_at, **usage) -> Entitlements:
    return Entitlements(
        plan=plan,
        limits=PLAN_LIMITS[plan],
        usage=UsageCounters(**usage),
        fetched_at=fetched_at,
    )


def mock_client(handler) -> EntitlementClient:
    return EntitlementClient("http://writer.test/v1", transport=httpx.MockTransport(handler))


@pytest.fixture
def tracker(storage, clock):
    return UsageTracker(storage, clock=clock)


@pytest.fixture
def gate(storage, tracker, clock):
    return UsageGate(ProfileStore(storage), tracker, ttl_seconds=300, clock=clock)


class TestCheck:
    def test_unknown_entitlement_fails_open(self, gate):
        for action in GateAction:
            gate.check(action, export_format="JSON")

    def test_generation_quota(self, gate, clock):
        gate.set_entitlements(entitlements(PlanTier.FREE, clock.now, ai_generations=10))

        with pytest.raises(QuotaExceededError) as exc_info:
            gate.check(GateAction.GENERATE_TEXT)

        assert exc_info.value.limit == 10
        assert exc_info.value.current == 10
        assert exc_info.value.plan == "free"

    def test_stale_entitlement_fails_open(self, gate, clock):
        gate.set_entitlements(entitlements(PlanTier.FREE, clock.now, ai_generations=10))
        clock.advance(seconds=301)
        gate.check(GateAction.GENERATE_TEXT)
        assert gate.entitlements is None

    def test_word_quota_uses_local_tracker(self, gate, tracker, clock):
        gate.set_entitlements(entitlements(PlanTier.FREE, clock.now, ai_generations=1))
        gate.check(GateAction.GENERATE_TEXT)

        tracker.track(" ".join(["word"] * 2_000))
        with pytest.raises(QuotaExceededError) as exc_info:
            gate.check(GateAction.GENERATE_TEXT)
        assert exc_info.value.limit == 2_000

    def test_free_plan_has_no_images(self, gate, clock):
        gate.set_entitlements(entitlements(PlanTier.FREE, clock.now))
        with pytest.raises(QuotaExceededError):
            gate.check(GateAction.GENERATE_IMAGE)

    def test_image_quota(self, gate, tracker, clock):
        gate.set_entitlements(entitlements(PlanTier.PRO, clock.now))
        gate.check(GateAction.GENERATE_IMAGE)
        for _ in range(50):
            tracker.track("", is_image=True)
        with pytest.raises(QuotaExceededError):
            gate.check(GateAction.GENERATE_IMAGE)

    def test_document_quota(self, gate, clock):
        gate.set_entitlements(entitlements(PlanTier.FREE, clock.now, documents=5))
        with pytest.raises(QuotaExceededError):
            gate.check(GateAction.CREATE_DOCUMENT)

    def test_unlimited_plan(self, gate, clock):
        gate.set_entitlements(
            entitlements(PlanTier.ENTERPRISE, clock.now, ai_generations=10_000, documents=10_000)
        )
        for action in GateAction:
            gate.check(action)


class TestPlanFeatures:
    def test_watermark_on_free_plan(self, gate):
        html = gate.apply_watermark("<p>Draft</p>")
        assert html.startswith('<div class="gw-watermarked"')
        assert "<p>Draft</p>" in html
        assert WATERMARK_TEXT in html

    def test_no_watermark_on_paid_profile(self, gate, storage):
        ProfileStore(storage).set_plan(PlanTier.PRO)
        assert gate.apply_watermark("<p>Draft</p>") == "<p>Draft</p>"

    def test_fresh_entitlement_overrides_profile(self, gate, clock):
        gate.set_entitlements(entitlements(PlanTier.AGENCY, clock.now))
        assert gate.plan == PlanTier.AGENCY
        assert not gate.requires_watermark()

    def test_export_formats(self, gate, clock):
        assert gate.can_export("pdf")
        assert gate.can_export("DOCX")
        gate.set_entitlements(entitlements(PlanTier.FREE, clock.now))
        assert not gate.can_export("DOCX")
        gate.set_entitlements(entitlements(PlanTier.PRO, clock.now))
        assert gate.can_export(ExportFormat.DOCX)
        assert not gate.can_export("MD")

    def test_export_blocked_with_upgrade(self, gate, clock):
        gate.set_entitlements(entitlements(PlanTier.FREE, clock.now))
        gate.check(GateAction.EXPORT, export_format="pdf")

        with pytest.raises(QuotaExceededError) as exc_info:
            gate.check(GateAction.EXPORT, export_format="DOCX")

        assert exc_info.value.affordance == Affordance.UPGRADE
        assert exc_info.value.plan == "free"

    def test_export_allowed_when_entitlement_stale(self, gate, clock):
        gate.set_entitlements(entitlements(PlanTier.FREE, clock.now))
        clock.advance(seconds=301)
        gate.check(GateAction.EXPORT, export_format="DOCX")

    def test_unknown_export_format(self, gate):
        with pytest.raises(InputValidationError):
            gate.check(GateAction.EXPORT, export_format="RTF")

    def test_features(self, gate, storage):
        assert not gate.has_feature("brand-voice")
        assert gate.has_feature("something-everyone-has")
        ProfileStore(storage).set_plan(PlanTier.PRO)
        assert gate.has_feature("brand-voice")
        assert not gate.has_feature("api-access")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_caches_entitlement(self, storage, tracker, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/usage"
            return httpx.Response(200, json={"plan": "pro", "usage": {"ai_generations": 3}})

        gate = UsageGate(ProfileStore(storage), tracker, client=mock_client(handler), clock=clock)
        result = await gate.refresh()

        assert result.plan == PlanTier.PRO
        assert result.fetched_at == clock.now
        assert gate.plan == PlanTier.PRO

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_cache(self, storage, tracker, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"detail": "boom"})

        gate = UsageGate(ProfileStore(storage), tracker, client=mock_client(handler), clock=clock)
        cached = entitlements(PlanTier.AGENCY, clock.now)
        gate.set_entitlements(cached)

        assert await gate.refresh() == cached
        assert gate.plan == PlanTier.AGENCY

    @pytest.mark.asyncio
    async def test_network_failure_keeps_unknown(self, storage, tracker, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        gate = UsageGate(ProfileStore(storage), tracker, client=mock_client(handler), clock=clock)
        assert await gate.refresh() is None
        gate.check(GateAction.GENERATE_TEXT)

    @pytest.mark.asyncio
    async def test_check_feature(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/usage/check/api-access"
            return httpx.Response(
                200,
                json={
                    "feature": "api-access",
                    "has_access": False,
                    "user_plan": "free",
                    "required_plans": ["enterprise"],
                    "needs_upgrade": True,
                },
            )

        check = await mock_client(handler).check_feature("api-access")
        assert check.needs_upgrade
        assert check.required_plans == ["enterprise"]


class TestUsageTracker:
    def test_counts_words(self, tracker):
        tracker.track("<p>one two</p><p>three</p>")
        assert tracker.load().words_used == 3

    def test_images(self, tracker):
        tracker.track("data:image/png;base64,AAA", is_image=True)
        usage = tracker.load()
        assert usage.images_used == 1
        assert usage.words_used == 0

    def test_resets_each_month(self, tracker, clock):
        tracker.track("one two three")
        clock.advance(days=20)
        assert tracker.load().words_used == 0

    def test_write_failure_is_not_raised(self, clock):
        tracker = UsageTracker(MemoryStorage(capacity_bytes=10), clock=clock)
        usage = tracker.track("one two")
        assert usage.words_used == 2
