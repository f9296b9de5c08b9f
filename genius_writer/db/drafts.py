"""Per-tool draft persistence.

One draft per tool id under the key draft_<tool_id>. Saving replaces the
previous draft wholesale; drafts are never versioned or soft-deleted.
"""

from pydantic import ValidationError

from genius_writer.core.logging import get_logger
from genius_writer.core.schemas_documents import Draft
from genius_writer.core.tools import ToolType
from genius_writer.db.storage import KeyValueStorage, read_json, write_json

logger = get_logger(__name__)

DRAFT_KEY_PREFIX = "draft_"


def draft_key(tool_id: ToolType | str) -> str:
    return f"{DRAFT_KEY_PREFIX}{ToolType(tool_id).value}"


class DraftStore:
    """Reads and writes drafts keyed by tool id."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def load(self, tool_id: ToolType | str) -> Draft | None:
        """
        Load the draft for a tool.

        Args:
            tool_id: Tool identifier

        Returns:
            The stored Draft, or None when absent or unreadable
        """
        data = read_json(self.storage, draft_key(tool_id), None)
        if data is None:
            return None
        if isinstance(data, dict):
            # Browser drafts are identified by their key only
            data.setdefault("toolId", ToolType(tool_id).value)
        try:
            draft = Draft.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable draft for {tool_id}: {e}")
            return None
        if draft.tool_id != ToolType(tool_id):
            logger.warning(f"Draft under {draft_key(tool_id)} belongs to {draft.tool_id.value}")
            return None
        return draft

    def save(self, draft: Draft) -> None:
        """Persist a draft, replacing any previous one for the same tool."""
        write_json(self.storage, draft_key(draft.tool_id), draft.to_storage())
        logger.debug(f"Saved draft for {draft.tool_id.value}")

    def list_drafts(self) -> list[Draft]:
        drafts = []
        for key in self.storage.keys():
            if not key.startswith(DRAFT_KEY_PREFIX):
                continue
            tool_id = key[len(DRAFT_KEY_PREFIX):]
            if tool_id not in ToolType._value2member_map_:
                continue
            draft = self.load(tool_id)
            if draft is not None:
                drafts.append(draft)
        return drafts
