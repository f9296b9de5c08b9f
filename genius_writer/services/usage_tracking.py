"""Local usage tracking: words and images generated this month."""

from datetime import datetime
from typing import Callable

from pydantic import ValidationError

from genius_writer.core.content_stats import count_words
from genius_writer.core.errors import StorageError
from genius_writer.core.logging import get_logger
from genius_writer.core.schemas_documents import utcnow
from genius_writer.core.schemas_usage import LocalUsage
from genius_writer.db.storage import KeyValueStorage, read_json, write_json

logger = get_logger(__name__)

USAGE_KEY = "gw_usage_tracker"


class UsageTracker:
    """Counts generated words and images, resetting at the start of each month."""

    def __init__(self, storage: KeyValueStorage, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.clock = clock

    def load(self) -> LocalUsage:
        now = self.clock()
        data = read_json(self.storage, USAGE_KEY, None)
        if data is None:
            return LocalUsage(last_reset=now)
        try:
            usage = LocalUsage.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Unreadable usage tracker, starting fresh: {e}")
            return LocalUsage(last_reset=now)

        if (usage.last_reset.year, usage.last_reset.month) != (now.year, now.month):
            return LocalUsage(last_reset=now)
        return usage

    def track(self, content: str, is_image: bool = False) -> LocalUsage:
        """
        Add one generation to this month's counters.

        A failed write is logged and does not fail the generation that
        produced the content.
        """
        usage = self.load()
        if is_image:
            usage.images_used += 1
        elif content:
            usage.words_used += count_words(content)

        try:
            write_json(self.storage, USAGE_KEY, usage.to_storage())
        except StorageError as e:
            logger.error(f"Failed to persist usage counters: {e}")
        return usage
