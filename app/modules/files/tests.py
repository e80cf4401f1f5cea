"""
Tests for the artifact store: path convention, upload validation and the
mapping of S3 errors onto the billing error taxonomy
"""
import pytest

from app.core.exceptions import NotFound, StoreUnavailable, ValidationFailed
from app.modules.files.schemas import ArtifactCategory, ArtifactKind
from app.modules.files.service import ArtifactStore, safe_file_name, validate_upload


# ===== PATHS =====

class TestBuildPath:
    def test_invoice_path_has_no_category(self):
        path = ArtifactStore.build_path(ArtifactKind.INVOICE, 7, "INV-000001.pdf")
        assert path == "Invoices/7/INV-000001.pdf"

    def test_expense_paths_carry_category(self):
        generated = ArtifactStore.build_path(ArtifactKind.EXPENSE, 7, "BILL-3.pdf", ArtifactCategory.GENERATED_PDFS)
        uploaded = ArtifactStore.build_path(ArtifactKind.EXPENSE, 7, "BILL-3_1.png", ArtifactCategory.UPLOADED_DOCUMENTS)
        assert generated == "Expense/Generated_pdfs/7/BILL-3.pdf"
        assert uploaded == "Expense/Uploaded_Documents/7/BILL-3_1.png"

    def test_directory_parts_are_stripped(self):
        """Client-supplied names cannot escape the owner folder"""
        path = ArtifactStore.build_path(ArtifactKind.INVOICE, 7, "../../etc/passwd")
        assert path == "Invoices/7/passwd"

    @pytest.mark.parametrize("name", ["", "..", "/"])
    def test_empty_names_rejected(self, name):
        with pytest.raises(ValidationFailed):
            safe_file_name(name)


# ===== UPLOAD VALIDATION =====

class TestValidateUpload:
    IMAGE_TYPES = ["image/png", "application/pdf"]

    def test_accepts_allowed_file(self):
        validate_upload("bill.png", "image/png", 100, self.IMAGE_TYPES, [".png", ".pdf"])

    def test_rejects_empty_file(self):
        with pytest.raises(ValidationFailed, match="empty"):
            validate_upload("bill.png", "image/png", 0, self.IMAGE_TYPES)

    def test_rejects_oversized_file(self):
        with pytest.raises(ValidationFailed, match="maximum size"):
            validate_upload("bill.png", "image/png", 11, self.IMAGE_TYPES, max_size=10)

    def test_rejects_unknown_mime_type(self):
        with pytest.raises(ValidationFailed, match="not allowed"):
            validate_upload("bill.txt", "text/plain", 10, self.IMAGE_TYPES)

    def test_rejects_mismatched_extension(self):
        with pytest.raises(ValidationFailed, match="extension"):
            validate_upload("bill.svg", "image/png", 10, self.IMAGE_TYPES, [".png", ".pdf"])

    @pytest.mark.parametrize("name", ["run.exe.png", "a..b.png", "script.php.pdf", "deploy.SH", "app.js"])
    def test_rejects_dangerous_names(self, name):
        with pytest.raises(ValidationFailed, match="dangerous"):
            validate_upload(name, "image/png", 10, self.IMAGE_TYPES)

    @pytest.mark.parametrize("name", ["q1.shipping.pdf", "batch.commands.png", "phpinfo.png", "notes.json.pdf"])
    def test_accepts_names_that_only_contain_extension_letters(self, name):
        validate_upload(name, "image/png", 10, self.IMAGE_TYPES)


# ===== STORE OPERATIONS =====

class TestArtifactStore:
    def test_upload_then_download_returns_same_bytes_and_type(self, artifact_store):
        content = b"\x89PNG\r\n\x1a\nfake image"
        path = artifact_store.upload(
            content, "logo.png", ArtifactKind.INVOICE, 1, "image/png"
        )

        artifact = artifact_store.download(path)

        assert artifact.content == content
        assert artifact.content_type == "image/png"
        assert artifact.content_length == len(content)
        assert artifact.file_name == "logo.png"

    def test_bucket_created_once(self, artifact_store, fake_s3):
        artifact_store.upload(b"a", "a.pdf", ArtifactKind.INVOICE, 1, "application/pdf")
        artifact_store.upload(b"b", "b.pdf", ArtifactKind.INVOICE, 1, "application/pdf")
        assert fake_s3.buckets == {"test-bucket"}
        assert artifact_store._bucket_ready is True

    def test_download_missing_object_is_not_found(self, artifact_store):
        with pytest.raises(NotFound):
            artifact_store.download("Invoices/1/missing.pdf")

    def test_delete_is_idempotent(self, artifact_store, fake_s3):
        path = artifact_store.upload(b"a", "a.pdf", ArtifactKind.INVOICE, 1, "application/pdf")
        artifact_store.delete(path)
        artifact_store.delete(path)
        assert not artifact_store.exists(path)

    def test_exists(self, artifact_store):
        path = artifact_store.upload(b"a", "a.pdf", ArtifactKind.INVOICE, 1, "application/pdf")
        assert artifact_store.exists(path)
        assert not artifact_store.exists("Invoices/1/other.pdf")

    def test_put_failure_is_store_unavailable(self, artifact_store, fake_s3):
        fake_s3.fail_puts = True
        with pytest.raises(StoreUnavailable):
            artifact_store.upload(b"a", "a.pdf", ArtifactKind.INVOICE, 1, "application/pdf")

    def test_unreachable_endpoint_is_store_unavailable(self, artifact_store, fake_s3):
        fake_s3.unavailable = True
        with pytest.raises(StoreUnavailable):
            artifact_store.download("Invoices/1/a.pdf")

    def test_delete_failure_is_store_unavailable(self, artifact_store, fake_s3):
        path = artifact_store.upload(b"a", "a.pdf", ArtifactKind.INVOICE, 1, "application/pdf")
        fake_s3.fail_all_deletes = True
        with pytest.raises(StoreUnavailable):
            artifact_store.delete(path)
        assert path in fake_s3.objects
