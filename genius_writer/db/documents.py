"""Versioned, soft-deletable document store over local key/value storage.

Documents and folders live under two keys. Every mutation reads the whole
collection, changes it in memory and writes the whole collection back; if
the write fails the previously stored snapshot is still what a later read
returns, and StorageError propagates to the caller.
"""

import json
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

from genius_writer.core.config import get_settings
from genius_writer.core.errors import StorageError
from genius_writer.core.logging import get_logger
from genius_writer.core.schemas_documents import (
    DataSnapshot,
    Document,
    DocumentQuery,
    DocumentVersion,
    Folder,
    SortOrder,
    VersionKind,
    new_id,
    normalize_tags,
    utcnow,
)
from genius_writer.core.tools import ToolType, get_tool
from genius_writer.db.drafts import DRAFT_KEY_PREFIX, DraftStore, draft_key
from genius_writer.db.profile import PROFILE_KEY, ProfileStore
from genius_writer.db.storage import KeyValueStorage, read_json, write_json

logger = get_logger(__name__)

DOCUMENTS_KEY = "genius_writer_documents"
FOLDERS_KEY = "genius_writer_folders"
COPY_SUFFIX = " (Copy)"


def _version_kind(tool_id: ToolType) -> VersionKind:
    return VersionKind.IMAGE if tool_id == ToolType.IMAGE_GEN else VersionKind.TEXT


class DocumentStore:
    """CRUD, versioning, trash and organization for saved documents."""

    def __init__(
        self,
        storage: KeyValueStorage,
        max_versions: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.max_versions = max_versions or get_settings().MAX_DOCUMENT_VERSIONS
        self.clock = clock

    # ------------------------------------------------------------------
    # Collection I/O
    # ------------------------------------------------------------------

    def _read_documents(self) -> list[Document]:
        documents = []
        for item in read_json(self.storage, DOCUMENTS_KEY, []):
            try:
                documents.append(Document.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable document record: {e}")
        return documents

    def _write_documents(self, documents: list[Document]) -> None:
        write_json(self.storage, DOCUMENTS_KEY, [d.to_storage() for d in documents])

    def _read_folders(self) -> list[Folder]:
        folders = []
        for item in read_json(self.storage, FOLDERS_KEY, []):
            try:
                folders.append(Folder.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable folder record: {e}")
        return folders

    def _write_folders(self, folders: list[Folder]) -> None:
        write_json(self.storage, FOLDERS_KEY, [f.to_storage() for f in folders])

    def _update(self, document_id: str, mutate: Callable[[Document], None]) -> Document | None:
        documents = self._read_documents()
        for document in documents:
            if document.id == document_id:
                mutate(document)
                self._write_documents(documents)
                return document
        logger.warning(f"Document {document_id} not found")
        return None

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create(
        self,
        tool_id: ToolType | str,
        content: str = "",
        title: str | None = None,
        folder_id: str | None = None,
        tags: list[str] | None = None,
    ) -> Document:
        """
        Create and persist a new document.

        Args:
            tool_id: Tool that produced the content
            content: Document content (HTML or Markdown)
            title: Title; blank falls back to "<tool name> - <YYYY-MM-DD>"
            folder_id: Optional folder
            tags: Optional tags

        Returns:
            The stored Document
        """
        tool = get_tool(tool_id)
        now = self.clock()
        if not title or not title.strip():
            title = f"{tool.name} - {now.date().isoformat()}"

        document = Document(
            title=title.strip(),
            content=content,
            template_id=tool.id,
            folder_id=folder_id,
            tags=tags or [],
            last_modified=now,
        )
        documents = self._read_documents()
        documents.append(document)
        self._write_documents(documents)
        logger.info(f"Created document {document.id} ({tool.id.value})")
        return document

    def save(self, document: Document) -> Document:
        """
        Upsert a document by id.

        When the id exists and the content changed, the previously stored
        content is pushed onto the stored version history (newest first,
        capped). Versions on the incoming object are always ignored: the
        stored history is authoritative and a new document starts with none.
        """
        now = self.clock()
        documents = self._read_documents()
        for index, existing in enumerate(documents):
            if existing.id != document.id:
                continue

            versions = list(existing.versions)
            if existing.content != document.content:
                versions.insert(
                    0,
                    DocumentVersion(
                        timestamp=existing.last_modified,
                        content=existing.content,
                        kind=_version_kind(existing.template_id),
                    ),
                )
                versions = versions[: self.max_versions]

            saved = document.model_copy(
                update={
                    "versions": versions,
                    "last_modified": now,
                    "deleted_at": existing.deleted_at,
                }
            )
            documents[index] = saved
            self._write_documents(documents)
            logger.debug(f"Saved document {saved.id} ({len(versions)} versions)")
            return saved

        # A new document starts without history
        saved = document.model_copy(update={"last_modified": now, "versions": []})
        documents.append(saved)
        self._write_documents(documents)
        logger.info(f"Inserted document {saved.id}")
        return saved

    def get(self, document_id: str) -> Document | None:
        for document in self._read_documents():
            if document.id == document_id:
                return document
        return None

    def delete(self, document_id: str) -> Document | None:
        """Soft delete: the document moves to the trash."""
        now = self.clock()

        def mutate(document: Document) -> None:
            if document.deleted_at is None:
                document.deleted_at = now

        return self._update(document_id, mutate)

    def restore(self, document_id: str) -> Document | None:
        def mutate(document: Document) -> None:
            document.deleted_at = None

        return self._update(document_id, mutate)

    def hard_delete(self, document_id: str) -> bool:
        """Remove a document and its history permanently."""
        documents = self._read_documents()
        remaining = [d for d in documents if d.id != document_id]
        if len(remaining) == len(documents):
            return False
        self._write_documents(remaining)
        logger.info(f"Permanently deleted document {document_id}")
        return True

    def empty_trash(self) -> int:
        documents = self._read_documents()
        remaining = [d for d in documents if not d.is_trashed]
        removed = len(documents) - len(remaining)
        if removed:
            self._write_documents(remaining)
            logger.info(f"Emptied trash ({removed} documents)")
        return removed

    def duplicate(self, document_id: str) -> Document | None:
        documents = self._read_documents()
        source = next((d for d in documents if d.id == document_id), None)
        if source is None:
            logger.warning(f"Document {document_id} not found")
            return None

        copy = source.model_copy(
            update={
                "id": new_id(),
                "title": f"{source.title}{COPY_SUFFIX}",
                "versions": [],
                "deleted_at": None,
                "tags": list(source.tags),
                "last_modified": self.clock(),
            }
        )
        documents.append(copy)
        self._write_documents(documents)
        return copy

    def move_to_folder(self, document_id: str, folder_id: str | None) -> Document | None:
        def mutate(document: Document) -> None:
            document.folder_id = folder_id

        return self._update(document_id, mutate)

    def rename(self, document_id: str, title: str) -> Document | None:
        def mutate(document: Document) -> None:
            document.title = title.strip() or document.title

        return self._update(document_id, mutate)

    def set_tags(self, document_id: str, tags: list[str]) -> Document | None:
        def mutate(document: Document) -> None:
            document.tags = normalize_tags(tags)

        return self._update(document_id, mutate)

    def restore_version(self, document_id: str, version_id: str) -> Document | None:
        """Make a previous version current; the replaced content becomes a version."""
        document = self.get(document_id)
        if document is None:
            return None
        version = next((v for v in document.versions if v.id == version_id), None)
        if version is None:
            logger.warning(f"Version {version_id} not found on document {document_id}")
            return None
        return self.save(document.model_copy(update={"content": version.content}))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_documents(self, query: DocumentQuery | None = None) -> list[Document]:
        """
        List active (or trashed) documents.

        Args:
            query: Filters; tags match when a document has ANY of them,
                search is a case-insensitive substring of title or content

        Returns:
            Matching documents in the requested order
        """
        query = query or DocumentQuery()
        needle = query.search.strip().lower()
        wanted_tags = set(query.tags)

        matches = []
        for document in self._read_documents():
            if document.is_trashed != query.trash:
                continue
            if query.folder_id is not None and document.folder_id != query.folder_id:
                continue
            if wanted_tags and not wanted_tags.intersection(document.tags):
                continue
            if needle and needle not in document.title.lower() and needle not in document.content.lower():
                continue
            matches.append(document)

        if query.sort == SortOrder.NEWEST:
            matches.sort(key=lambda d: d.last_modified, reverse=True)
        elif query.sort == SortOrder.OLDEST:
            matches.sort(key=lambda d: d.last_modified)
        elif query.sort == SortOrder.AZ:
            matches.sort(key=lambda d: d.title.lower())
        elif query.sort == SortOrder.ZA:
            matches.sort(key=lambda d: d.title.lower(), reverse=True)
        return matches

    def list_trash(self) -> list[Document]:
        return self.list_documents(DocumentQuery(trash=True))

    def all_tags(self) -> list[str]:
        tags = {tag for d in self._read_documents() if not d.is_trashed for tag in d.tags}
        return sorted(tags)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, name: str) -> Folder:
        folder = Folder(name=name.strip(), created_at=self.clock())
        folders = self._read_folders()
        folders.append(folder)
        self._write_folders(folders)
        return folder

    def list_folders(self) -> list[Folder]:
        return self._read_folders()

    def delete_folder(self, folder_id: str) -> int:
        """
        Delete a folder; its documents move to no folder.

        Returns:
            Number of documents that were reassigned
        """
        documents = self._read_documents()
        reassigned = 0
        for document in documents:
            if document.folder_id == folder_id:
                document.folder_id = None
                reassigned += 1
        if reassigned:
            self._write_documents(documents)

        folders = self._read_folders()
        self._write_folders([f for f in folders if f.id != folder_id])
        logger.info(f"Deleted folder {folder_id}, reassigned {reassigned} documents")
        return reassigned

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def export_data(self) -> str:
        """Serialize documents, folders, profile and drafts into one JSON snapshot."""
        snapshot = DataSnapshot(
            exported_at=self.clock(),
            documents=self._read_documents(),
            folders=self._read_folders(),
            profile=ProfileStore(self.storage).load(),
            drafts=DraftStore(self.storage).list_drafts(),
        )
        return snapshot.model_dump_json(by_alias=True)

    def import_data(self, payload: str | dict[str, Any]) -> bool:
        """
        Replace local state with a snapshot.

        Stored drafts for tools the snapshot has no draft for are removed.
        The snapshot is fully parsed and validated before anything is
        written. If a later namespace write fails, namespaces already
        written are put back to their previous values.

        Args:
            payload: JSON text or already-decoded dict

        Returns:
            True on success, False if the snapshot was rejected or could not be stored
        """
        try:
            data = json.loads(payload) if isinstance(payload, str) else payload
            snapshot = DataSnapshot.model_validate(data)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(f"Rejected import snapshot: {e}")
            return False

        kept_drafts = {draft_key(d.tool_id) for d in snapshot.drafts}
        # None marks a key to remove: drafts the snapshot does not carry
        writes: list[tuple[str, Any | None]] = [
            (DOCUMENTS_KEY, [d.to_storage() for d in snapshot.documents]),
            (FOLDERS_KEY, [f.to_storage() for f in snapshot.folders]),
        ]
        writes.extend(
            (key, None)
            for key in self.storage.keys()
            if key.startswith(DRAFT_KEY_PREFIX) and key not in kept_drafts
        )
        writes.append((PROFILE_KEY, snapshot.profile.to_storage()))
        writes.extend((draft_key(d.tool_id), d.to_storage()) for d in snapshot.drafts)

        previous: list[tuple[str, str | None]] = []
        try:
            for key, value in writes:
                previous.append((key, self.storage.get_item(key)))
                if value is None:
                    self.storage.remove_item(key)
                else:
                    write_json(self.storage, key, value)
        except StorageError as e:
            logger.error(f"Import failed, rolling back {len(previous)} keys: {e}")
            for key, old in reversed(previous):
                if old is None:
                    self.storage.remove_item(key)
                else:
                    self.storage.set_item(key, old)
            return False

        logger.info(
            f"Imported {len(snapshot.documents)} documents, {len(snapshot.folders)} folders, "
            f"{len(snapshot.drafts)} drafts"
        )
        return True
