"""
Unit tests for the document verification service.

These tests cover:
- Upload validation (size and type)
- Upload, rejection and re-upload with the staff notification
- Review rules
- Document store failures
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from admissions.core.config import settings
from admissions.core.errors import (
    DependencyFailureError,
    FileTooLargeError,
    InvalidTransitionError,
    NotFoundError,
    UnsupportedFileTypeError,
    ValidationError,
)
from admissions.modules.documents import service
from admissions.modules.documents.models import DocumentKind, DocumentStatus
from admissions.modules.documents.schemas import build_document_list
from admissions.modules.documents.service import (
    InvalidDocumentStateError,
    ReviewDecision,
    Uploader,
    all_required_approved,
    remove_document,
    review_document,
    upload_document,
    validate_upload,
)
from admissions.modules.documents.storage import DocumentStoreError
from admissions.modules.enrollments.models import EnrollmentStatus
from admissions.modules.notifications import NotificationKind

SERVICE = "admissions.modules.documents.service"
PDF = b"%PDF-1.4 test document"


@pytest.fixture
def fake_store():
    store = MagicMock()
    store.put = AsyncMock(side_effect=lambda key, content, content_type: key)
    store.get = AsyncMock(return_value=PDF)
    store.delete = AsyncMock()
    with patch(f"{SERVICE}.get_document_store", return_value=store):
        yield store


class TestValidateUpload:
    """Tests for validate_upload."""

    def test_accepts_pdf_and_images(self):
        validate_upload("application/pdf", 10)
        validate_upload("image/png", 10)
        validate_upload("image/jpeg; charset=binary", 10)

    def test_rejects_oversized_file(self):
        with pytest.raises(FileTooLargeError) as exc_info:
            validate_upload("application/pdf", settings.max_upload_bytes + 1)
        assert exc_info.value.status_code == 413

    def test_limit_is_inclusive(self):
        validate_upload("application/pdf", settings.max_upload_bytes)

    @pytest.mark.parametrize("content_type", ["text/plain", "application/zip", ""])
    def test_rejects_unsupported_type(self, content_type):
        with pytest.raises(UnsupportedFileTypeError) as exc_info:
            validate_upload(content_type, 10)
        assert exc_info.value.status_code == 415


class TestAllRequiredApproved:
    def test_false_when_any_required_kind_missing(self, make_document):
        docs = [make_document(DocumentKind.STUDENT_ID, DocumentStatus.APPROVED)]
        assert all_required_approved(docs) is False

    def test_contract_kinds_are_optional(self, make_document):
        docs = [
            make_document(kind, DocumentStatus.APPROVED)
            for kind in DocumentKind
            if not kind.value.startswith("contract")
        ]
        assert all_required_approved(docs) is True


class TestUploadDocument:
    """Tests for upload_document."""

    @pytest.mark.asyncio
    async def test_first_upload_creates_row(
        self, mock_db, make_enrollment, make_document, fake_store
    ):
        enrollment = make_enrollment()
        stored = make_document(DocumentKind.PHOTO, enrollment_id=enrollment.id)

        with (
            patch.object(
                service.repository, "get_document", AsyncMock(side_effect=[None, stored])
            ),
            patch.object(service.repository, "create_document", AsyncMock()) as create,
            patch(f"{SERVICE}.notify", AsyncMock()) as notify,
        ):
            result = await upload_document(
                mock_db,
                enrollment,
                DocumentKind.PHOTO,
                content=PDF,
                content_type="application/pdf",
                file_name="photo.pdf",
            )

        assert result is stored
        key = fake_store.put.call_args.args[0]
        assert key.startswith(f"enrollments/{enrollment.id}/photo_")
        assert create.call_args.kwargs["storage_ref"] == key
        assert create.call_args.kwargs["size_bytes"] == len(PDF)
        mock_db.commit.assert_awaited_once()
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reupload_after_rejection_notifies_staff(
        self, mock_db, make_enrollment, make_document, fake_store
    ):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        rejected = make_document(
            DocumentKind.RESIDENCY,
            DocumentStatus.REJECTED,
            enrollment_id=enrollment.id,
            rejection_reason="Illegible",
        )
        old_ref = rejected.storage_ref

        with (
            patch.object(
                service.repository, "get_document", AsyncMock(side_effect=[rejected, rejected])
            ),
            patch.object(
                service.repository, "replace_rejected_upload", AsyncMock(return_value=True)
            ) as replace,
            patch(f"{SERVICE}.notify", AsyncMock(return_value=True)) as notify,
        ):
            await upload_document(
                mock_db,
                enrollment,
                DocumentKind.RESIDENCY,
                content=PDF,
                content_type="application/pdf",
                file_name="bill.pdf",
            )

        replace.assert_awaited_once()
        fake_store.delete.assert_awaited_once_with(old_ref)
        notify.assert_awaited_once()
        assert notify.call_args.args[0] == NotificationKind.DOCUMENT_RESUBMITTED
        assert notify.call_args.args[1] == enrollment.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [DocumentStatus.UPLOADED, DocumentStatus.APPROVED])
    async def test_cannot_replace_uploaded_or_approved(
        self, mock_db, make_enrollment, make_document, fake_store, status
    ):
        enrollment = make_enrollment()
        existing = make_document(DocumentKind.PHOTO, status)

        with patch.object(service.repository, "get_document", AsyncMock(return_value=existing)):
            with pytest.raises(InvalidDocumentStateError) as exc_info:
                await upload_document(
                    mock_db,
                    enrollment,
                    DocumentKind.PHOTO,
                    content=PDF,
                    content_type="application/pdf",
                    file_name="photo.pdf",
                )

        assert exc_info.value.status_code == 409
        fake_store.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self, mock_db, make_enrollment, fake_store):
        with pytest.raises(FileTooLargeError):
            await upload_document(
                mock_db,
                make_enrollment(),
                DocumentKind.PHOTO,
                content=PDF,
                content_type="application/pdf",
                file_name="photo.pdf",
                declared_size=settings.max_upload_bytes + 1,
            )
        fake_store.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_type(self, mock_db, make_enrollment, fake_store):
        with pytest.raises(UnsupportedFileTypeError):
            await upload_document(
                mock_db,
                make_enrollment(),
                DocumentKind.PHOTO,
                content=b"hello",
                content_type="text/plain",
                file_name="notes.txt",
            )
        fake_store.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_parent_cannot_upload_after_approval(
        self, mock_db, make_enrollment, fake_store
    ):
        with pytest.raises(InvalidTransitionError):
            await upload_document(
                mock_db,
                make_enrollment(EnrollmentStatus.APPROVED),
                DocumentKind.CONTRACT_SIGNED,
                content=PDF,
                content_type="application/pdf",
                file_name="contract.pdf",
            )

    @pytest.mark.asyncio
    async def test_staff_can_upload_after_approval(
        self, mock_db, make_enrollment, make_document, fake_store
    ):
        enrollment = make_enrollment(EnrollmentStatus.APPROVED)
        stored = make_document(DocumentKind.CONTRACT_DRAFT)

        with (
            patch.object(
                service.repository, "get_document", AsyncMock(side_effect=[None, stored])
            ),
            patch.object(service.repository, "create_document", AsyncMock()),
        ):
            result = await upload_document(
                mock_db,
                enrollment,
                DocumentKind.CONTRACT_DRAFT,
                content=PDF,
                content_type="application/pdf",
                file_name="contract.pdf",
                uploader=Uploader.STAFF,
            )

        assert result is stored

    @pytest.mark.asyncio
    async def test_store_failure_is_retryable(self, mock_db, make_enrollment, fake_store):
        fake_store.put = AsyncMock(side_effect=DocumentStoreError("disk full"))

        with (
            patch.object(service.repository, "get_document", AsyncMock(return_value=None)),
            patch.object(service.repository, "create_document", AsyncMock()) as create,
        ):
            with pytest.raises(DependencyFailureError) as exc_info:
                await upload_document(
                    mock_db,
                    make_enrollment(),
                    DocumentKind.PHOTO,
                    content=PDF,
                    content_type="application/pdf",
                    file_name="photo.pdf",
                )

        assert exc_info.value.status_code == 503
        create.assert_not_awaited()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_failure_discards_new_file(
        self, mock_db, make_enrollment, fake_store
    ):
        mock_db.commit = AsyncMock(side_effect=RuntimeError("connection lost"))

        with (
            patch.object(service.repository, "get_document", AsyncMock(return_value=None)),
            patch.object(service.repository, "create_document", AsyncMock()),
        ):
            with pytest.raises(RuntimeError):
                await upload_document(
                    mock_db,
                    make_enrollment(),
                    DocumentKind.PHOTO,
                    content=PDF,
                    content_type="application/pdf",
                    file_name="photo.pdf",
                )

        key = fake_store.put.call_args.args[0]
        fake_store.delete.assert_awaited_once_with(key)
        mock_db.rollback.assert_awaited_once()


class TestReviewDocument:
    """Tests for review_document."""

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, mock_db, make_enrollment):
        with pytest.raises(ValidationError):
            await review_document(
                mock_db, make_enrollment(), DocumentKind.PHOTO, ReviewDecision.REJECT, reason=" "
            )

    @pytest.mark.asyncio
    async def test_reject_uploaded_document(self, mock_db, make_enrollment, make_document):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        document = make_document(DocumentKind.PHOTO, DocumentStatus.UPLOADED)
        reviewer = uuid4()

        with (
            patch.object(service.repository, "get_document", AsyncMock(return_value=document)),
            patch.object(
                service.repository, "set_review_decision", AsyncMock(return_value=True)
            ) as decide,
        ):
            result = await review_document(
                mock_db,
                enrollment,
                DocumentKind.PHOTO,
                ReviewDecision.REJECT,
                reason="Blurry photo",
                reviewer_id=reviewer,
            )

        assert result is document
        kwargs = decide.call_args.kwargs
        assert kwargs["status"] == DocumentStatus.REJECTED
        assert kwargs["rejection_reason"] == "Blurry photo"
        assert kwargs["reviewed_by"] == reviewer
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_approve_drops_reason(self, mock_db, make_enrollment, make_document):
        document = make_document(DocumentKind.PHOTO, DocumentStatus.UPLOADED)

        with (
            patch.object(service.repository, "get_document", AsyncMock(return_value=document)),
            patch.object(
                service.repository, "set_review_decision", AsyncMock(return_value=True)
            ) as decide,
        ):
            await review_document(
                mock_db,
                make_enrollment(EnrollmentStatus.SENT),
                DocumentKind.PHOTO,
                ReviewDecision.APPROVE,
                reason="looks fine",
            )

        assert decide.call_args.kwargs["status"] == DocumentStatus.APPROVED
        assert decide.call_args.kwargs["rejection_reason"] is None

    @pytest.mark.asyncio
    async def test_pending_document_cannot_be_reviewed(self, mock_db, make_enrollment):
        with patch.object(service.repository, "get_document", AsyncMock(return_value=None)):
            with pytest.raises(InvalidDocumentStateError):
                await review_document(
                    mock_db, make_enrollment(), DocumentKind.PHOTO, ReviewDecision.APPROVE
                )

    @pytest.mark.asyncio
    async def test_lost_race_is_reported(self, mock_db, make_enrollment, make_document):
        document = make_document(DocumentKind.PHOTO, DocumentStatus.UPLOADED)

        with (
            patch.object(service.repository, "get_document", AsyncMock(return_value=document)),
            patch.object(
                service.repository, "set_review_decision", AsyncMock(return_value=False)
            ),
        ):
            with pytest.raises(InvalidDocumentStateError):
                await review_document(
                    mock_db, make_enrollment(), DocumentKind.PHOTO, ReviewDecision.APPROVE
                )

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()


class TestRemoveDocument:
    """Tests for remove_document."""

    @pytest.mark.asyncio
    async def test_removes_row_then_file(
        self, mock_db, make_enrollment, make_document, fake_store
    ):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        document = make_document(DocumentKind.RESIDENCY, DocumentStatus.REJECTED)
        remaining = make_document(DocumentKind.STUDENT_ID, DocumentStatus.APPROVED)
        order = []
        mock_db.commit = AsyncMock(side_effect=lambda: order.append("commit"))
        fake_store.delete = AsyncMock(side_effect=lambda ref: order.append(("delete", ref)))

        with (
            patch.object(service.repository, "get_document", AsyncMock(return_value=document)),
            patch.object(service.repository, "delete_document", AsyncMock()) as delete_row,
        ):
            await remove_document(mock_db, enrollment, DocumentKind.RESIDENCY)

        delete_row.assert_awaited_once_with(mock_db, document.id)
        assert order == ["commit", ("delete", document.storage_ref)]

        statuses = {item.kind: item.status for item in build_document_list([remaining])}
        assert statuses[DocumentKind.RESIDENCY] == DocumentStatus.PENDING
        assert statuses[DocumentKind.STUDENT_ID] == DocumentStatus.APPROVED

    @pytest.mark.asyncio
    async def test_database_failure_keeps_file(
        self, mock_db, make_enrollment, make_document, fake_store
    ):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        document = make_document(DocumentKind.RESIDENCY)
        mock_db.commit = AsyncMock(side_effect=SQLAlchemyError("connection reset"))

        with (
            patch.object(service.repository, "get_document", AsyncMock(return_value=document)),
            patch.object(service.repository, "delete_document", AsyncMock()),
        ):
            with pytest.raises(SQLAlchemyError):
                await remove_document(mock_db, enrollment, DocumentKind.RESIDENCY)

        mock_db.rollback.assert_awaited_once()
        fake_store.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_file_delete_failure_after_commit_is_logged(
        self, mock_db, make_enrollment, make_document, fake_store
    ):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        document = make_document(DocumentKind.RESIDENCY)
        fake_store.delete = AsyncMock(side_effect=DocumentStoreError("disk unavailable"))

        with (
            patch.object(service.repository, "get_document", AsyncMock(return_value=document)),
            patch.object(service.repository, "delete_document", AsyncMock()),
        ):
            await remove_document(mock_db, enrollment, DocumentKind.RESIDENCY)

        mock_db.commit.assert_awaited_once()
        fake_store.delete.assert_awaited_once_with(document.storage_ref)

    @pytest.mark.asyncio
    async def test_nothing_uploaded(self, mock_db, make_enrollment, fake_store):
        with patch.object(service.repository, "get_document", AsyncMock(return_value=None)):
            with pytest.raises(NotFoundError):
                await remove_document(mock_db, make_enrollment(), DocumentKind.PHOTO)

        fake_store.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_enrollment_is_refused(self, mock_db, make_enrollment, fake_store):
        enrollment = make_enrollment(EnrollmentStatus.CANCELLED)

        with pytest.raises(InvalidTransitionError):
            await remove_document(mock_db, enrollment, DocumentKind.PHOTO)

        mock_db.commit.assert_not_awaited()
