"""User profile persistence (plan, favorites, brand voices)."""

from pydantic import ValidationError

from genius_writer.core.logging import get_logger
from genius_writer.core.schemas_documents import BrandVoice, PlanTier, UserProfile
from genius_writer.core.tools import ToolType
from genius_writer.db.storage import KeyValueStorage, read_json, write_json

logger = get_logger(__name__)

PROFILE_KEY = "genius_writer_profile"


class ProfileStore:
    """Loads and updates the single local user profile."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def load(self) -> UserProfile:
        data = read_json(self.storage, PROFILE_KEY, None)
        if data is None:
            return UserProfile()
        try:
            return UserProfile.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Unreadable profile, using defaults: {e}")
            return UserProfile()

    def save(self, profile: UserProfile) -> UserProfile:
        write_json(self.storage, PROFILE_KEY, profile.to_storage())
        return profile

    def set_plan(self, plan: PlanTier | str) -> UserProfile:
        profile = self.load()
        profile.plan = PlanTier.parse(plan.value if isinstance(plan, PlanTier) else plan)
        return self.save(profile)

    def toggle_favorite(self, tool_id: ToolType | str) -> UserProfile:
        """Add the tool to favorites, or remove it if already there."""
        tool = ToolType(tool_id)
        profile = self.load()
        if tool in profile.favorites:
            profile.favorites = [t for t in profile.favorites if t != tool]
        else:
            profile.favorites = [*profile.favorites, tool]
        return self.save(profile)

    def add_brand_voice(self, name: str, description: str) -> BrandVoice:
        profile = self.load()
        voice = BrandVoice(name=name, description=description)
        profile.brand_voices = [*profile.brand_voices, voice]
        self.save(profile)
        return voice

    def remove_brand_voice(self, voice_id: str) -> UserProfile:
        profile = self.load()
        profile.brand_voices = [v for v in profile.brand_voices if v.id != voice_id]
        return self.save(profile)

    def voice_hint(self, voice_id: str | None) -> str | None:
        """Resolve a brand voice id to the hint passed to generation."""
        if not voice_id:
            return None
        for voice in self.load().brand_voices:
            if voice.id == voice_id:
                return voice.hint
        return None
