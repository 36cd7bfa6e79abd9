"""
Shared fixtures for the API tests.
"""

import io
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from starlette.datastructures import Headers

from app.core.database import Base
from app.core.rate_limit import reset_memory_store
from app.core.storage import ReceiptStorage
from app.modules.membership_applications.models import ApplicationStatus, MembershipApplication
from app.modules.membership_applications.schemas import MembershipApplicationCreate
from app.modules.roster.schemas import EligibilityResult, RosterRecord
from app.modules.users.models import User  # noqa: F401  registers the users table

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF_BYTES = b"%PDF-1.7\n" + b"0" * 64


def make_upload(
    content: bytes = PNG_BYTES,
    filename: str = "receipt.png",
    content_type: str = "image/png",
) -> UploadFile:
    """Build an UploadFile the way the multipart parser would."""
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def make_application(**overrides) -> MembershipApplication:
    """Build a MembershipApplication with sensible defaults."""
    now = datetime.now(UTC)
    fields = {
        "id": uuid4(),
        "full_name": "Ayse Yilmaz",
        "email": "ayse@example.com",
        "student_number": "20210001",
        "department": "Computer Engineering",
        "phone_number": "+905551112233",
        "payment_amount": Decimal("150.00"),
        "receipt_filename": "payment-receipt-1-1.png",
        "receipt_original_name": "receipt.png",
        "receipt_path": "uploads/payment-receipts/payment-receipt-1-1.png",
        "receipt_mimetype": "image/png",
        "receipt_size": 72,
        "is_eligible": True,
        "roster_checked_at": now,
        "status": ApplicationStatus.PENDING,
        "admin_notes": "",
        "reviewed_by": None,
        "reviewed_at": None,
        "created_user_id": None,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return MembershipApplication(**fields)


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_memory_store()
    yield
    reset_memory_store()


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.flush = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def admin_id():
    return uuid4()


@pytest.fixture
def pending_application():
    return make_application()


@pytest.fixture
def sample_application_create():
    return MembershipApplicationCreate(
        full_name="Ayse Yilmaz",
        department="Computer Engineering",
        student_number="20210001",
        phone_number="+905551112233",
        payment_amount=Decimal("150.00"),
        email="ayse@example.com",
    )


@pytest.fixture
def receipt_storage(tmp_path):
    return ReceiptStorage(
        directory=tmp_path / "payment-receipts",
        max_bytes=1024,
        allowed_types=("image/jpeg", "image/jpg", "image/png", "application/pdf"),
    )


@pytest.fixture
def roster_record():
    return RosterRecord(
        full_name="Ayse Yilmaz",
        student_number="20210001",
        national_id="12345678901",
        department="Computer Engineering",
    )


@pytest.fixture
def mock_roster(roster_record):
    """Roster service that finds the sample student."""
    roster = MagicMock()
    roster.check_eligibility = AsyncMock(
        return_value=EligibilityResult(
            is_eligible=True,
            matched_record=roster_record,
            reason="Student number found in the member roster.",
        )
    )
    return roster


@pytest.fixture
def application_factory():
    return make_application


@pytest.fixture
def upload_factory():
    return make_upload


@pytest.fixture
async def db_session():
    """Session on a fresh in-memory SQLite database holding the full schema."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()
