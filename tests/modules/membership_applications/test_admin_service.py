"""
Tests for admin service functions.

These tests verify the business logic for admin operations including:
- Listing applications with pagination
- Getting application details
- Rejecting applications
- Approving applications with account provisioning
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from app.modules.membership_applications.models import ApplicationStatus
from app.modules.membership_applications.service import (
    AccountProvisioningError,
    ApplicationAlreadyProcessedError,
    ApplicationNotFoundError,
    RejectionReasonRequiredError,
    admin_approve_application,
    admin_get_application_detail,
    admin_get_applications_list,
    admin_reject_application,
    member_email_for,
    split_full_name,
)
from app.modules.users.models import MembershipStatus, UserRole

SERVICE = "app.modules.membership_applications.service"
STUDENT_DOMAIN = "student.meumt.edu.tr"


@pytest.fixture
def mock_storage():
    storage = MagicMock()
    storage.discard = AsyncMock()
    return storage


@pytest.fixture
def created_user():
    user = MagicMock()
    user.id = uuid4()
    user.username = "20210001"
    user.email = "ayse@example.com"
    return user


# ============================================
# Helpers
# ============================================


class TestNameAndEmailHelpers:
    def test_split_full_name(self):
        assert split_full_name("Ayse Nur Yilmaz") == ("Ayse", "Nur Yilmaz")

    def test_split_single_name(self):
        assert split_full_name("Cher") == ("Cher", "")

    def test_member_email_prefers_applicant_email(self, application_factory):
        application = application_factory(email="Ayse@Example.com")
        assert member_email_for(application, STUDENT_DOMAIN) == "ayse@example.com"

    def test_member_email_falls_back_to_student_address(self, application_factory):
        application = application_factory(email=None, student_number="20210001")
        assert member_email_for(application, STUDENT_DOMAIN) == "20210001@student.meumt.edu.tr"


# ============================================
# Listing
# ============================================


@pytest.mark.asyncio
async def test_admin_get_applications_list_success(mock_db, pending_application):
    """List returns applications with page metadata."""
    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.list_by_status = AsyncMock(return_value=([pending_application], 1))

        result = await admin_get_applications_list(mock_db, page=1, limit=10)

        assert result["applications"] == [pending_application]
        assert result["total"] == 1
        assert result["pages"] == 1
        mock_repo.list_by_status.assert_called_once_with(
            mock_db, status=ApplicationStatus.PENDING, skip=0, limit=10
        )


@pytest.mark.asyncio
async def test_admin_get_applications_list_limit_cap(mock_db):
    """Page size is capped at 100."""
    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.list_by_status = AsyncMock(return_value=([], 250))

        result = await admin_get_applications_list(
            mock_db, status=ApplicationStatus.APPROVED, page=2, limit=500
        )

        assert result["limit"] == 100
        assert result["pages"] == 3
        mock_repo.list_by_status.assert_called_once_with(
            mock_db, status=ApplicationStatus.APPROVED, skip=100, limit=100
        )


@pytest.mark.asyncio
async def test_admin_get_applications_list_empty(mock_db):
    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.list_by_status = AsyncMock(return_value=([], 0))

        result = await admin_get_applications_list(mock_db)

        assert result["pages"] == 0


@pytest.mark.asyncio
async def test_admin_get_application_detail_not_found(mock_db):
    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(ApplicationNotFoundError) as exc_info:
            await admin_get_application_detail(mock_db, uuid4())

        assert exc_info.value.status_code == 404


# ============================================
# Rejection
# ============================================


@pytest.mark.asyncio
async def test_admin_reject_requires_reason(mock_db, admin_id):
    """A blank reason is refused before the application is read."""
    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.get_by_id = AsyncMock()

        with pytest.raises(RejectionReasonRequiredError):
            await admin_reject_application(mock_db, uuid4(), admin_id, "   ")

        mock_repo.get_by_id.assert_not_called()
        mock_db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_admin_reject_success(
    mock_db, admin_id, pending_application, application_factory
):
    """Rejecting stores the reason, commits and notifies the applicant."""
    rejected = application_factory(
        id=pending_application.id,
        status=ApplicationStatus.REJECTED,
        admin_notes="Receipt unreadable",
        reviewed_by=admin_id,
    )

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.send_membership_rejected", new_callable=AsyncMock) as mock_email,
    ):
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=rejected)

        result = await admin_reject_application(
            mock_db, pending_application.id, admin_id, "  Receipt unreadable "
        )

        assert result.status == ApplicationStatus.REJECTED
        mock_repo.claim_for_review.assert_called_once_with(
            mock_db,
            pending_application.id,
            ApplicationStatus.REJECTED,
            reviewed_by=admin_id,
            admin_notes="Receipt unreadable",
        )
        mock_db.commit.assert_awaited_once()
        mock_email.assert_awaited_once()
        assert mock_email.call_args.kwargs["reason"] == "Receipt unreadable"


@pytest.mark.asyncio
async def test_admin_reject_without_email_skips_notification(
    mock_db, admin_id, application_factory
):
    application = application_factory(email=None)
    rejected = application_factory(id=application.id, email=None, status=ApplicationStatus.REJECTED)

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.send_membership_rejected", new_callable=AsyncMock) as mock_email,
    ):
        mock_repo.get_by_id = AsyncMock(return_value=application)
        mock_repo.claim_for_review = AsyncMock(return_value=rejected)

        await admin_reject_application(mock_db, application.id, admin_id, "Not a student")

        mock_email.assert_not_called()


@pytest.mark.asyncio
async def test_admin_reject_email_failure_does_not_fail(
    mock_db, admin_id, pending_application, application_factory
):
    rejected = application_factory(id=pending_application.id, status=ApplicationStatus.REJECTED)

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(
            f"{SERVICE}.send_membership_rejected",
            new_callable=AsyncMock,
            side_effect=RuntimeError("smtp down"),
        ),
    ):
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=rejected)

        result = await admin_reject_application(
            mock_db, pending_application.id, admin_id, "Duplicate payment"
        )

        assert result is rejected
        mock_db.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_admin_reject_already_processed(mock_db, admin_id, application_factory):
    application = application_factory(status=ApplicationStatus.APPROVED)

    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=application)
        mock_repo.claim_for_review = AsyncMock()

        with pytest.raises(ApplicationAlreadyProcessedError):
            await admin_reject_application(mock_db, application.id, admin_id, "Late")

        mock_repo.claim_for_review.assert_not_called()


@pytest.mark.asyncio
async def test_admin_reject_lost_race(mock_db, admin_id, pending_application):
    """A concurrent review makes the conditional update match nothing."""
    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=None)

        with pytest.raises(ApplicationAlreadyProcessedError):
            await admin_reject_application(mock_db, pending_application.id, admin_id, "Late")

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_admin_reject_not_found(mock_db, admin_id):
    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(ApplicationNotFoundError):
            await admin_reject_application(mock_db, uuid4(), admin_id, "Reason")


# ============================================
# Approval
# ============================================


def _approved_copy(application_factory, application, admin_id, **overrides):
    return application_factory(
        id=application.id,
        email=overrides.pop("email", application.email),
        status=ApplicationStatus.APPROVED,
        reviewed_by=admin_id,
        **overrides,
    )


@pytest.mark.asyncio
async def test_admin_approve_success(
    mock_db,
    admin_id,
    pending_application,
    application_factory,
    mock_storage,
    created_user,
):
    """Approval provisions the account, commits once and cleans up the receipt."""
    approved = _approved_copy(application_factory, pending_application, admin_id)

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.UserRepository") as mock_users,
        patch(f"{SERVICE}.generate_temporary_password", return_value="Temp-Pass-123"),
        patch(f"{SERVICE}.hash_password", return_value="hashed") as mock_hash,
        patch(
            f"{SERVICE}.send_membership_approved", new_callable=AsyncMock, return_value=True
        ) as mock_email,
    ):
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=approved)
        mock_repo.set_created_user = AsyncMock()
        mock_users.find_conflicting = AsyncMock(return_value=None)
        mock_users.create = AsyncMock(return_value=created_user)

        result = await admin_approve_application(
            mock_db,
            pending_application.id,
            admin_id,
            admin_notes="Welcome",
            permissions=["events:write"],
            storage=mock_storage,
            student_email_domain=STUDENT_DOMAIN,
        )

        assert result["application"] is approved
        assert result["user"] is created_user
        assert result["temporary_password"] is None

        mock_hash.assert_called_once_with("Temp-Pass-123")
        create_kwargs = mock_users.create.call_args.kwargs
        assert create_kwargs["username"] == "20210001"
        assert create_kwargs["email"] == "ayse@example.com"
        assert create_kwargs["first_name"] == "Ayse"
        assert create_kwargs["last_name"] == "Yilmaz"
        assert create_kwargs["role"] == UserRole.USER
        assert create_kwargs["permissions"] == ["events:write"]
        assert create_kwargs["must_change_password"] is True
        assert create_kwargs["membership_status"] == MembershipStatus.APPROVED
        assert create_kwargs["roster_verified"] is True

        mock_repo.set_created_user.assert_called_once_with(mock_db, approved, created_user.id)
        mock_db.commit.assert_awaited_once()
        mock_db.refresh.assert_any_await(approved)
        mock_db.refresh.assert_any_await(created_user)
        mock_db.rollback.assert_not_called()
        mock_storage.discard.assert_awaited_once_with(approved.receipt_path)
        assert mock_email.call_args.kwargs["temp_password"] == "Temp-Pass-123"


@pytest.mark.asyncio
async def test_admin_approve_without_email_returns_temporary_password(
    mock_db,
    admin_id,
    application_factory,
    mock_storage,
    created_user,
):
    """With no address to email, the admin receives the temporary password."""
    application = application_factory(email=None)
    approved = _approved_copy(application_factory, application, admin_id, email=None)

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.UserRepository") as mock_users,
        patch(f"{SERVICE}.generate_temporary_password", return_value="Temp-Pass-123"),
        patch(f"{SERVICE}.hash_password", return_value="hashed"),
        patch(f"{SERVICE}.send_membership_approved", new_callable=AsyncMock) as mock_email,
    ):
        mock_repo.get_by_id = AsyncMock(return_value=application)
        mock_repo.claim_for_review = AsyncMock(return_value=approved)
        mock_repo.set_created_user = AsyncMock()
        mock_users.find_conflicting = AsyncMock(return_value=None)
        mock_users.create = AsyncMock(return_value=created_user)

        result = await admin_approve_application(
            mock_db,
            application.id,
            admin_id,
            storage=mock_storage,
            student_email_domain=STUDENT_DOMAIN,
        )

        assert result["temporary_password"] == "Temp-Pass-123"
        assert mock_users.create.call_args.kwargs["email"] == "20210001@student.meumt.edu.tr"
        mock_email.assert_not_called()


@pytest.mark.asyncio
async def test_admin_approve_email_failure_keeps_approval(
    mock_db,
    admin_id,
    pending_application,
    application_factory,
    mock_storage,
    created_user,
):
    approved = _approved_copy(application_factory, pending_application, admin_id)

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.UserRepository") as mock_users,
        patch(f"{SERVICE}.generate_temporary_password", return_value="Temp-Pass-123"),
        patch(f"{SERVICE}.hash_password", return_value="hashed"),
        patch(
            f"{SERVICE}.send_membership_approved",
            new_callable=AsyncMock,
            side_effect=RuntimeError("provider down"),
        ),
    ):
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=approved)
        mock_repo.set_created_user = AsyncMock()
        mock_users.find_conflicting = AsyncMock(return_value=None)
        mock_users.create = AsyncMock(return_value=created_user)

        result = await admin_approve_application(
            mock_db,
            pending_application.id,
            admin_id,
            storage=mock_storage,
            student_email_domain=STUDENT_DOMAIN,
        )

        assert result["temporary_password"] == "Temp-Pass-123"
        mock_db.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_admin_approve_existing_account_conflict(
    mock_db,
    admin_id,
    pending_application,
    application_factory,
    mock_storage,
):
    """An existing account aborts the approval; the application stays PENDING."""
    approved = _approved_copy(application_factory, pending_application, admin_id)

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.UserRepository") as mock_users,
    ):
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=approved)
        mock_repo.set_created_user = AsyncMock()
        mock_users.find_conflicting = AsyncMock(return_value=MagicMock())
        mock_users.create = AsyncMock()

        with pytest.raises(AccountProvisioningError) as exc_info:
            await admin_approve_application(
                mock_db,
                pending_application.id,
                admin_id,
                storage=mock_storage,
                student_email_domain=STUDENT_DOMAIN,
            )

        assert exc_info.value.status_code == 409
        mock_users.create.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()
        mock_storage.discard.assert_not_called()


@pytest.mark.asyncio
async def test_admin_approve_integrity_error_on_commit(
    mock_db,
    admin_id,
    pending_application,
    application_factory,
    mock_storage,
    created_user,
):
    """A unique violation at commit is reported as a conflict and rolled back."""
    approved = _approved_copy(application_factory, pending_application, admin_id)
    mock_db.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.UserRepository") as mock_users,
        patch(f"{SERVICE}.hash_password", return_value="hashed"),
    ):
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=approved)
        mock_repo.set_created_user = AsyncMock()
        mock_users.find_conflicting = AsyncMock(return_value=None)
        mock_users.create = AsyncMock(return_value=created_user)

        with pytest.raises(AccountProvisioningError) as exc_info:
            await admin_approve_application(
                mock_db,
                pending_application.id,
                admin_id,
                storage=mock_storage,
                student_email_domain=STUDENT_DOMAIN,
            )

        assert exc_info.value.status_code == 409
        mock_db.rollback.assert_awaited_once()
        mock_storage.discard.assert_not_called()


@pytest.mark.asyncio
async def test_admin_approve_unexpected_failure_rolls_back(
    mock_db,
    admin_id,
    pending_application,
    application_factory,
    mock_storage,
):
    approved = _approved_copy(application_factory, pending_application, admin_id)

    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.UserRepository") as mock_users,
        patch(f"{SERVICE}.hash_password", return_value="hashed"),
    ):
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=approved)
        mock_users.find_conflicting = AsyncMock(return_value=None)
        mock_users.create = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(AccountProvisioningError) as exc_info:
            await admin_approve_application(
                mock_db,
                pending_application.id,
                admin_id,
                storage=mock_storage,
                student_email_domain=STUDENT_DOMAIN,
            )

        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "ACCOUNT_PROVISIONING_FAILED"
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_admin_approve_lost_race(mock_db, admin_id, pending_application, mock_storage):
    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.UserRepository") as mock_users,
    ):
        mock_repo.get_by_id = AsyncMock(return_value=pending_application)
        mock_repo.claim_for_review = AsyncMock(return_value=None)
        mock_users.create = AsyncMock()

        with pytest.raises(ApplicationAlreadyProcessedError):
            await admin_approve_application(
                mock_db,
                pending_application.id,
                admin_id,
                storage=mock_storage,
                student_email_domain=STUDENT_DOMAIN,
            )

        mock_users.create.assert_not_called()
        mock_db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_admin_approve_already_rejected(
    mock_db, admin_id, application_factory, mock_storage
):
    application = application_factory(status=ApplicationStatus.REJECTED)

    with patch(f"{SERVICE}.repository") as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=application)
        mock_repo.claim_for_review = AsyncMock()

        with pytest.raises(ApplicationAlreadyProcessedError):
            await admin_approve_application(
                mock_db,
                application.id,
                admin_id,
                storage=mock_storage,
                student_email_domain=STUDENT_DOMAIN,
            )

        mock_repo.claim_for_review.assert_not_called()
