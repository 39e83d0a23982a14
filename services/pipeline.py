import re
import logging
from functools import lru_cache
from typing import BinaryIO, Callable, List, Optional

from models.document import Document, DocumentDraft, Entity
from services.entities import EntityExtractor
from services.normalizer import normalize
from services.pdf_text import extract_pdf_text
from services.storage import S3ObjectStore, build_object_key
from utils.config import Settings, get_settings
from utils.errors import (
    AuthorizationError,
    ExtractionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from utils.repository import DocumentRepository, get_document_repository

logger = logging.getLogger("services.pipeline")

EXTRACTION_FAILED = "[EXTRACTION FAILED]"
PDF_CONTENT_TYPE = "application/pdf"
# Room for multipart boundaries and part headers around the file itself
MULTIPART_OVERHEAD_BYTES = 64 * 1024

_DOC_ID = re.compile(r"^[0-9a-f]{32}$")


class IngestionPipeline:
    """Turns one uploaded PDF into a stored, annotated Document.

    Stages run strictly in order: validate, store, extract text, normalize,
    annotate, persist. Storage and persistence failures abort the request;
    text and entity extraction failures degrade to a sentinel or an empty list.
    """

    def __init__(
        self,
        store,
        repository: DocumentRepository,
        extractor: EntityExtractor,
        text_extractor: Callable[[bytes], str] = extract_pdf_text,
        max_upload_bytes: int = 10 * 1024 * 1024,
    ):
        self.store = store
        self.repository = repository
        self.extractor = extractor
        self.text_extractor = text_extractor
        self.max_upload_bytes = max_upload_bytes

    # -- upload --

    def _validate(self, filename: Optional[str], content_type: Optional[str], size: Optional[int], stream) -> None:
        if stream is None or not filename:
            raise ValidationError("No file was uploaded.")
        if not content_type or not content_type.lower().startswith(PDF_CONTENT_TYPE):
            raise ValidationError("The uploaded file is not a valid PDF document.")
        if size is not None and size > self.max_upload_bytes:
            raise ValidationError(self._too_large_message())

    def check_request_length(self, content_length: Optional[int]) -> None:
        """Reject a request body that cannot fit under the ceiling before any of it is read."""
        if content_length is None:
            return
        if content_length > self.max_upload_bytes + MULTIPART_OVERHEAD_BYTES:
            logger.warning("upload_rejected", extra={"reason": "content_length", "size_bytes": content_length})
            raise ValidationError(self._too_large_message())

    def _too_large_message(self) -> str:
        return f"File too large. Max {self.max_upload_bytes // (1024 * 1024)}MB allowed"

    def _read_payload(self, stream: BinaryIO) -> bytes:
        # Read one byte past the ceiling to catch understated sizes
        payload = stream.read(self.max_upload_bytes + 1)
        if len(payload) > self.max_upload_bytes:
            raise ValidationError(self._too_large_message())
        return payload

    def _extract_text(self, payload: bytes, title: str) -> str:
        try:
            raw_text = self.text_extractor(payload)
        except ExtractionError:
            logger.warning("text_extraction_failed", extra={"file_name": title}, exc_info=True)
            return EXTRACTION_FAILED
        logger.info("text_extracted", extra={"file_name": title, "chars": len(raw_text)})
        return raw_text

    def _annotate(self, cleaned_text: str, title: str) -> List[Entity]:
        if not cleaned_text:
            logger.info("entity_extraction_skipped", extra={"file_name": title, "reason": "no_text"})
            return []
        try:
            return self.extractor.extract(cleaned_text)
        except ExtractionError as exc:
            logger.warning("entity_extraction_failed", extra={"file_name": title, "error": str(exc)})
            return []

    def ingest(
        self,
        owner: str,
        filename: Optional[str],
        content_type: Optional[str],
        size: Optional[int],
        stream: Optional[BinaryIO],
    ) -> Document:
        try:
            self._validate(filename, content_type, size, stream)
            payload = self._read_payload(stream)
        except ValidationError as exc:
            logger.warning("upload_rejected", extra={"file_name": filename, "mime": content_type, "reason": exc.message})
            raise

        stored = self.store.upload(payload, build_object_key(filename), PDF_CONTENT_TYPE)
        logger.info("upload_stored", extra={"file_name": filename, "storage_id": stored.provider_id, "size_bytes": len(payload)})

        raw_text = self._extract_text(payload, filename)
        cleaned_text = normalize(raw_text) if raw_text != EXTRACTION_FAILED else ""
        entities = self._annotate(cleaned_text, filename)

        draft = DocumentDraft(
            title=filename,
            storage_url=stored.url,
            storage_id=stored.provider_id,
            raw_text=raw_text,
            cleaned_text=cleaned_text,
            entities=entities,
            owner=owner,
        )
        try:
            document = self.repository.create(draft)
        except PersistenceError:
            # The blob is left in place; log enough to reconcile it later.
            logger.error("orphaned_blob", extra={"file_name": filename, "storage_id": stored.provider_id}, exc_info=True)
            raise

        logger.info("document_persisted", extra={"doc_id": document.id, "entities": len(entities)})
        return document

    # -- read / delete --

    def get_document(self, owner: str, doc_id: str) -> Document:
        if not _DOC_ID.match(doc_id or ""):
            raise ValidationError("Invalid document ID")
        document = self.repository.get(doc_id)
        if document is None:
            raise NotFoundError()
        if document.owner != owner:
            logger.warning("document_access_denied", extra={"doc_id": doc_id})
            raise AuthorizationError()
        return document

    def list_documents(self, owner: str) -> List[Document]:
        return self.repository.list_by_owner(owner)

    def open_download(self, owner: str, doc_id: str):
        document = self.get_document(owner, doc_id)
        iterator, metadata, closer = self.store.open_stream(document.storage_id)
        return document, iterator, metadata, closer

    def delete_document(self, owner: str, doc_id: str) -> None:
        document = self.get_document(owner, doc_id)
        try:
            result = self.store.delete(document.storage_id)
            if result != "ok":
                logger.warning("storage_delete_status", extra={"doc_id": doc_id, "storage_id": document.storage_id, "result": result})
        except Exception:
            # Never block record removal on the storage provider
            logger.error("storage_delete_failed", extra={"doc_id": doc_id, "storage_id": document.storage_id}, exc_info=True)
        self.repository.delete(doc_id)
        logger.info("document_deleted", extra={"doc_id": doc_id})


def build_pipeline(settings: Settings) -> IngestionPipeline:
    extractor = EntityExtractor(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        api_url=settings.gemini_api_url,
        max_chars=settings.entity_max_chars,
    )
    return IngestionPipeline(
        store=S3ObjectStore.from_settings(settings),
        repository=get_document_repository(),
        extractor=extractor,
        max_upload_bytes=settings.max_upload_bytes,
    )


@lru_cache(maxsize=1)
def get_pipeline() -> IngestionPipeline:
    return build_pipeline(get_settings())
