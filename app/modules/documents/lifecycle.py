"""
Keeps document records and their stored artifacts consistent.

The record store and the artifact store fail independently and there is no
transaction spanning both. Every operation orders its steps so that a recorded
pointer always names an uploaded object:

* create / render: record -> render -> upload -> move pointer
* replace: upload under a fresh name -> move pointer -> delete previous object
* delete: delete record -> delete objects

A failed pointer move removes the object that was just uploaded. Cleanup that
fails is logged and reported as a CompensationResult; it never replaces the
error that triggered it. Orphan objects are tolerated, dangling pointers are not.
"""
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, List, Optional
import logging
import mimetypes
import re
import time

from app.core.exceptions import BillingError, CompensationFailed, RenderFailed, ValidationFailed
from app.modules.documents.renderer import DocumentRenderer
from app.modules.documents.repository import DocumentRepository
from app.modules.files.schemas import ArtifactKind
from app.modules.files.service import ArtifactStore, safe_file_name

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


@dataclass
class CompensationResult:
    path: str
    succeeded: bool
    error: Optional[BaseException] = None


_PATH_SEPARATORS = re.compile(r"[\\/]+")


def artifact_base_name(number: str, document_id: Optional[int] = None, extension: str = "") -> str:
    """
    Object name for an artifact of one document.

    '2024/001', 7, '.pdf' -> '2024-001_7.pdf'. Path separators in the number
    are flattened so the stored pointer equals the stored basename, and the
    record id keeps names distinct when numbers repeat.
    """
    stem = _PATH_SEPARATORS.sub("-", number or "").strip("-. ")
    if document_id is not None:
        stem = f"{stem}_{document_id}" if stem else str(document_id)
    if not stem:
        raise ValidationFailed(f"Invalid document number: {number!r}")
    return f"{stem}{extension}"


def timestamped_file_name(base_name: str, now_ms: int) -> str:
    """'INV-000001.pdf' -> 'INV-000001_1718000000000.pdf'"""
    path = PurePosixPath(safe_file_name(base_name))
    return f"{path.stem}_{now_ms}{path.suffix}"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class DocumentLifecycleCoordinator:

    def __init__(
        self,
        repository: DocumentRepository,
        artifact_store: ArtifactStore,
        renderer: DocumentRenderer,
        clock: Callable[[], int] = _epoch_ms,
    ):
        self.repository = repository
        self.artifact_store = artifact_store
        self.renderer = renderer
        self.clock = clock

    @property
    def artifact_kind(self) -> ArtifactKind:
        return ArtifactKind[self.repository.kind.name]

    def artifact_path(self, owner_id: int, field: str, file_name: str) -> str:
        return self.artifact_store.build_path(
            self.artifact_kind, owner_id, file_name, self.repository.artifact_fields[field]
        )

    # ===== operations =====

    def create_with_render(self, owner_id: int, data, today=None):
        """
        Insert the record, then render and store its PDF.

        A render or upload failure propagates with the record left in place
        and no pointer set; render_and_store recovers it later.
        """
        document = self.repository.create_record(owner_id, data, today=today)
        return self.render_and_store(document.id, owner_id)

    def render_and_store(self, document_id: int, owner_id: int):
        """(Re)generate the PDF of an existing record and point the record at it"""
        repository = self.repository
        field = repository.generated_pdf_field
        context = repository.get_render_context(document_id, owner_id)

        logo = self._load_logo(context.logo_path)
        try:
            content = self.renderer.render(
                context.document, context.line_items, context.owner, context.counterparty, logo=logo
            )
        except BillingError:
            raise
        except Exception as e:
            raise RenderFailed(f"Could not render {repository.label.lower()} {document_id}: {e}") from e

        previous = context.file_names.get(field)
        file_name = self.pdf_file_name(context.document.number, document_id)
        if previous:
            # Never overwrite the object the record currently points at
            file_name = timestamped_file_name(file_name, self.clock())

        path = self.artifact_store.upload(
            content, file_name, self.artifact_kind, owner_id, PDF_CONTENT_TYPE,
            repository.artifact_fields[field]
        )
        return self._move_pointer(document_id, owner_id, field, file_name, path, previous)

    def replace_artifact(
        self,
        document_id: int,
        owner_id: int,
        field: str,
        content: bytes,
        base_name: str,
        content_type: str,
    ):
        """
        Store new bytes for one artifact field of an existing record.

        The new object gets a timestamp-qualified name, so the old object is
        untouched until the pointer has moved.
        """
        document = self.repository.get_record(document_id, owner_id)
        previous = getattr(document, field)

        if not PurePosixPath(base_name).suffix:
            base_name += mimetypes.guess_extension(content_type) or ""
        file_name = timestamped_file_name(base_name, self.clock())

        path = self.artifact_store.upload(
            content, file_name, self.artifact_kind, owner_id, content_type,
            self.repository.artifact_fields[field]
        )
        return self._move_pointer(document_id, owner_id, field, file_name, path, previous)

    def delete_document(self, document_id: int, owner_id: int) -> List[CompensationResult]:
        """Delete the record, then its artifacts best-effort"""
        file_names = self.repository.delete_record(document_id, owner_id)
        results = []
        for field, file_name in file_names.items():
            if file_name:
                results.append(self._discard(self.artifact_path(owner_id, field, file_name)))
        return results

    @staticmethod
    def pdf_file_name(number: str, document_id: Optional[int] = None) -> str:
        """Stored PDF name; without a document id, the name shown to recipients"""
        if number.lower().endswith(".pdf"):
            number = number[:-4]
        return artifact_base_name(number, document_id, ".pdf")

    # ===== steps =====

    def _move_pointer(self, document_id, owner_id, field, file_name, path, previous):
        try:
            document = self.repository.set_file_name(document_id, owner_id, field, file_name)
        except Exception:
            self._compensate(path, f"pointer update on {self.repository.label.lower()} {document_id} failed")
            raise

        if previous and previous != file_name:
            self._discard(self.artifact_path(owner_id, field, previous))
        return document

    def _load_logo(self, logo_path: Optional[str]) -> Optional[bytes]:
        if not logo_path:
            return None
        try:
            return self.artifact_store.download(logo_path).content
        except BillingError as e:
            logger.warning(f"Logo {logo_path} unavailable, rendering placeholder: {e.message}")
            return None

    def _discard(self, path: str) -> CompensationResult:
        """Best-effort delete of an object nothing points at any more"""
        try:
            self.artifact_store.delete(path)
            return CompensationResult(path=path, succeeded=True)
        except Exception as e:
            logger.warning(f"Could not delete {path}, leaving orphan artifact: {e}")
            return CompensationResult(path=path, succeeded=False, error=e)

    def _compensate(self, path: str, reason: str) -> CompensationResult:
        """Remove an object uploaded by a step that did not complete"""
        try:
            self.artifact_store.delete(path)
            logger.info(f"Rolled back upload {path} after {reason}")
            return CompensationResult(path=path, succeeded=True)
        except Exception as e:
            failure = CompensationFailed(f"Rollback of {path} failed after {reason}", path=path, cause=e)
            logger.error(f"{failure.code}: {failure.message}: {e}")
            return CompensationResult(path=path, succeeded=False, error=failure)
