"""Tool session: the state behind one open tool view.

A session owns the form values, preview content and style selection of a
tool. It restores the tool's draft on open, autosaves changes through the
debounced draft layer, drives generation through the controller and turns
failures into notifications. Cancellation never produces a notification.
"""

from dataclasses import dataclass
from typing import Any, Callable

from genius_writer.core.blog_outline import BlogOutline, OutlineReview, review_outline
from genius_writer.core.config import Settings, get_settings
from genius_writer.core.content_sanitizer import sanitize_html
from genius_writer.core.content_stats import ContentStats, content_stats
from genius_writer.core.errors import GenerationCancelled, WriterError
from genius_writer.core.exporters import ExportedFile, ExportFormat, render_export
from genius_writer.core.logging import get_logger
from genius_writer.core.rate_limiter import RateLimiter, build_rate_limiter
from genius_writer.core.schemas_documents import Document, Draft, DraftStyle
from genius_writer.core.schemas_usage import GateAction
from genius_writer.core.tools import OutputKind, ToolSpec, ToolType, get_tool
from genius_writer.db.documents import DocumentStore
from genius_writer.db.drafts import DraftStore
from genius_writer.db.profile import ProfileStore
from genius_writer.db.storage import KeyValueStorage, get_storage
from genius_writer.services.draft_autosave import DraftAutosaver
from genius_writer.services.generation_backend import GenerationBackend, HttpGenerationBackend
from genius_writer.services.generation_controller import GenerationController, GenerationStream
from genius_writer.services.notifications import NotificationCenter
from genius_writer.services.usage_gate import EntitlementClient, UsageGate
from genius_writer.services.usage_tracking import UsageTracker

logger = get_logger(__name__)

ChunkCallback = Callable[[str], None]

HTML_EXPORT_FORMATS = frozenset({ExportFormat.PDF, ExportFormat.DOCX, ExportFormat.HTML})


@dataclass
class Services:
    """Long-lived collaborators shared by all tool sessions."""

    settings: Settings
    storage: KeyValueStorage
    documents: DocumentStore
    drafts: DraftStore
    profiles: ProfileStore
    tracker: UsageTracker
    gate: UsageGate
    rate_limiter: RateLimiter
    controller: GenerationController
    notifications: NotificationCenter


def build_services(
    settings: Settings | None = None,
    storage: KeyValueStorage | None = None,
    backend: GenerationBackend | None = None,
    entitlement_client: EntitlementClient | None = None,
) -> Services:
    """
    Wire the writer services once.

    Args:
        settings: Defaults to get_settings()
        storage: Defaults to the file-backed storage at STORAGE_PATH
        backend: Defaults to the HTTP generation proxy
        entitlement_client: Defaults to the billing API at GENERATION_API_URL

    Returns:
        Services container
    """
    settings = settings or get_settings()
    storage = storage if storage is not None else get_storage()

    profiles = ProfileStore(storage)
    tracker = UsageTracker(storage)
    gate = UsageGate(
        profiles,
        tracker,
        client=entitlement_client or EntitlementClient.from_settings(settings),
        ttl_seconds=settings.ENTITLEMENT_TTL_SECONDS,
    )
    rate_limiter = build_rate_limiter(settings)
    controller = GenerationController(
        backend or HttpGenerationBackend.from_settings(settings),
        gate=gate,
        rate_limiter=rate_limiter,
    )
    return Services(
        settings=settings,
        storage=storage,
        documents=DocumentStore(storage, max_versions=settings.MAX_DOCUMENT_VERSIONS),
        drafts=DraftStore(storage),
        profiles=profiles,
        tracker=tracker,
        gate=gate,
        rate_limiter=rate_limiter,
        controller=controller,
        notifications=NotificationCenter(),
    )


class ToolSession:
    """State and actions of one open tool."""

    def __init__(self, services: Services, tool_id: ToolType | str):
        self.services = services
        self.tool: ToolSpec = get_tool(tool_id)
        self.form_values: dict[str, Any] = {}
        self.content = ""
        self.style = DraftStyle()
        self.voice_id: str | None = None
        self.document_id: str | None = None
        self.outline: BlogOutline | None = None
        self.autosaver = DraftAutosaver(
            services.drafts,
            delay_seconds=services.settings.DRAFT_DEBOUNCE_SECONDS,
            notifications=services.notifications,
        )

    @property
    def tool_id(self) -> ToolType:
        return self.tool.id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "ToolSession":
        """Restore the tool's draft, if one exists."""
        draft = self.services.drafts.load(self.tool_id)
        if draft is not None:
            self.form_values = dict(draft.form_values)
            self.content = draft.content
            self.style = draft.style.model_copy()
            logger.info(f"Restored draft for {self.tool_id.value} saved at {draft.saved_at}")
        return self

    def close(self) -> None:
        """Cancel any generation and write the pending draft."""
        self.stop()
        self.autosaver.flush()

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def _snapshot(self) -> Draft:
        return Draft(
            tool_id=self.tool_id,
            form_values=dict(self.form_values),
            content=self.content,
            style=self.style.model_copy(),
        )

    def _changed(self) -> None:
        self.autosaver.schedule(self._snapshot())

    def update_field(self, name: str, value: Any) -> None:
        self.form_values[name] = value
        self._changed()

    def set_content(self, content: str) -> None:
        self.content = content
        self._changed()

    def set_style(self, template: str | None = None, accent_color: str | None = None) -> None:
        if template is not None:
            self.style.template = template
        if accent_color is not None:
            self.style.accent_color = accent_color
        self._changed()

    def select_voice(self, voice_id: str | None) -> None:
        self.voice_id = voice_id

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _style_payload(self) -> dict[str, Any]:
        return {"template": self.style.template, "accentColor": self.style.accent_color}

    async def _consume(self, stream: GenerationStream, on_chunk: ChunkCallback | None) -> None:
        async with stream:
            async for content in stream:
                self.content = content
                if on_chunk is not None:
                    on_chunk(content)

    async def run_generation(self, on_chunk: ChunkCallback | None = None) -> bool:
        """
        Generate content for the current form.

        Streaming tools call on_chunk with the cumulative cleaned content
        as it arrives. Errors become notifications; cancellation is silent.
        Outline-first tools produce an editable outline on the first call
        and write the post from that outline on the next.

        Returns:
            True if the generation completed and the preview was updated
        """
        if self.tool.outline_first and self.outline is None:
            await self.create_outline()
            return False

        controller = self.services.controller
        voice_hint = self.services.profiles.voice_hint(self.voice_id)

        try:
            if self.tool.outline_first:
                await self._consume(
                    controller.generate_from_outline(self.tool_id, self.outline, voice_hint), on_chunk
                )
                self.outline = None
            elif self.tool.streaming:
                await self._consume(
                    controller.generate_streaming(
                        self.tool_id, self.form_values, voice_hint, style=self._style_payload()
                    ),
                    on_chunk,
                )
            else:
                result = await controller.generate(
                    self.tool_id, self.form_values, voice_hint, style=self._style_payload()
                )
                self.content = result.value
        except GenerationCancelled:
            return False
        except WriterError as e:
            self.services.notifications.report(e)
            return False

        self._changed()
        return True

    def stop(self) -> None:
        self.services.controller.cancel(self.tool_id)

    # ------------------------------------------------------------------
    # Outline
    # ------------------------------------------------------------------

    async def create_outline(self) -> BlogOutline | None:
        """Ask for an outline of the current form; it replaces any outline being edited."""
        voice_hint = self.services.profiles.voice_hint(self.voice_id)
        try:
            outline = await self.services.controller.generate_outline(
                self.tool_id, self.form_values, voice_hint
            )
        except GenerationCancelled:
            return None
        except WriterError as e:
            self.services.notifications.report(e)
            return None

        self.outline = outline
        self.services.notifications.success(
            "Blog outline generated! Edit it before generating the full blog."
        )
        return outline

    def edit_outline(self, outline: BlogOutline) -> OutlineReview:
        """Replace the outline with the user's edit and review it."""
        self.outline = outline
        return review_outline(outline)

    def discard_outline(self) -> None:
        self.outline = None

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def rendered_content(self) -> str:
        """Preview markup: sanitized, and watermarked on the free tier."""
        if self.tool.output != OutputKind.TEXT:
            return self.content
        return self.services.gate.apply_watermark(sanitize_html(self.content))

    def stats(self) -> ContentStats:
        return content_stats(self.content)

    def save_to_documents(
        self,
        title: str | None = None,
        folder_id: str | None = None,
        tags: list[str] | None = None,
    ) -> Document | None:
        """
        Save the preview as a document.

        The first save creates a document; later saves from the same
        session update it, chaining versions.

        Returns:
            The saved Document, or None if nothing was saved
        """
        documents = self.services.documents
        notifications = self.services.notifications
        if not self.content.strip():
            notifications.info("Nothing to save yet. Generate some content first.")
            return None

        try:
            existing = documents.get(self.document_id) if self.document_id else None
            if existing is not None:
                update: dict[str, Any] = {"content": self.content}
                if title:
                    update["title"] = title
                document = documents.save(existing.model_copy(update=update))
            else:
                self.services.gate.check(GateAction.CREATE_DOCUMENT)
                document = documents.create(
                    self.tool_id, self.content, title=title, folder_id=folder_id, tags=tags
                )
        except WriterError as e:
            notifications.report(e)
            return None

        self.document_id = document.id
        notifications.success("Saved to documents")
        return document

    def export(self, export_format: ExportFormat | str, title: str | None = None) -> ExportedFile | None:
        """
        Export the preview in a plan-gated format.

        HTML-based formats go through the same sanitize and watermark path
        as the preview. A format the plan does not include is refused with
        an upgrade notification before anything is rendered.

        Returns:
            The rendered file, or None if nothing was exported
        """
        notifications = self.services.notifications
        if self.tool.output != OutputKind.TEXT:
            notifications.info("Only text content can be exported. Download the file instead.")
            return None
        if not self.content.strip():
            notifications.info("Nothing to export yet. Generate some content first.")
            return None

        try:
            fmt = ExportFormat.parse(export_format)
            self.services.gate.check(GateAction.EXPORT, export_format=fmt)
        except WriterError as e:
            notifications.report(e)
            return None

        content = self.content
        if fmt in HTML_EXPORT_FORMATS:
            content = self.rendered_content()
        exported = render_export(content, fmt, title=title or self.tool.name, tool_name=self.tool.name)
        logger.info(f"Exported {self.tool_id.value} as {fmt.value}")
        notifications.success(f"Exported as {fmt.value}")
        return exported
