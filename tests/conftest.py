"""Pytest configuration and fixtures."""

import os
import re
import tempfile

# Settings are read once at import time, so the test environment must be in place first
_TEST_DIR = tempfile.mkdtemp(prefix="pastebox-tests-")
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["OUTBOX_ENABLED"] = "false"
os.environ["EMAIL_HOST"] = ""
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_DIR, "uploads")
os.environ["PASTES_FILE"] = os.path.join(_TEST_DIR, "pastes.json")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from pastebox.database import Base, get_db  # noqa: E402
from pastebox.models.outbox import OutboxMessage  # noqa: E402
from pastebox.models.user import User  # noqa: E402, F401
from pastebox.services import blob_store as blob_store_module  # noqa: E402
from pastebox.services import paste_store as paste_store_module  # noqa: E402
from pastebox.services.auth import AuthService  # noqa: E402
from pastebox.services.blob_store import BlobStore  # noqa: E402
from pastebox.services.paste_store import PasteStore  # noqa: E402

TOKEN_PATTERN = re.compile(r"token=([0-9a-f]{40})")


class RecordingNotifier:
    """Notifier that keeps sent messages and can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, recipient: str, subject: str, body: str) -> None:
        from pastebox.exceptions import MailDispatchFailure

        if self.fail:
            raise MailDispatchFailure("relay unavailable")
        self.sent.append((recipient, subject, body))


@pytest.fixture(name="latest_mail_token")
def latest_mail_token_fixture():
    """Token embedded in the newest queued email for a recipient."""

    def latest_mail_token(db: Session, recipient: str) -> str:
        message = (
            db.query(OutboxMessage)
            .filter(OutboxMessage.recipient == recipient)
            .order_by(OutboxMessage.id.desc())
            .first()
        )
        assert message is not None, f"no mail queued for {recipient}"
        match = TOKEN_PATTERN.search(message.body)
        assert match, message.body
        return match.group(1)

    return latest_mail_token


@pytest.fixture(name="session_factory")
def session_factory_fixture():
    """Session factory over an in-memory SQLite database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="db_session")
def db_session_fixture(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="paste_store")
def paste_store_fixture(tmp_path):
    store = PasteStore(tmp_path / "pastes.json")
    store.load()
    return store


@pytest.fixture(name="blob_store")
def blob_store_fixture(tmp_path):
    return BlobStore(tmp_path / "uploads", max_bytes=1024 * 1024)


@pytest.fixture(name="notifier")
def notifier_fixture():
    return RecordingNotifier()


@pytest.fixture(name="auth_service")
def auth_service_fixture():
    return AuthService()


@pytest.fixture(name="client")
def client_fixture(db_session: Session, paste_store: PasteStore, blob_store: BlobStore):
    """Test client with the database, paste store and blob store pointed at test instances."""
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    # The lifespan and health check use the module singletons directly
    paste_store_module._paste_store = paste_store
    blob_store_module._blob_store = blob_store

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[paste_store_module.get_paste_store] = lambda: paste_store
    app.dependency_overrides[blob_store_module.get_blob_store] = lambda: blob_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    paste_store_module._paste_store = None
    blob_store_module._blob_store = None


@pytest.fixture(name="registered_user")
def registered_user_fixture(db_session: Session, auth_service: AuthService):
    """An unverified user. Returns its credentials and verification token."""
    user = auth_service.register(db_session, "test@example.com", "password123")
    return {
        "id": user.id,
        "email": user.email,
        "password": "password123",
        "verification_token": user.verification_token,
    }


@pytest.fixture(name="verified_user")
def verified_user_fixture(db_session: Session, auth_service: AuthService, registered_user: dict):
    """A verified user with a live session token."""
    auth_service.verify_email(db_session, registered_user["verification_token"])
    result = auth_service.login(db_session, registered_user["email"], registered_user["password"])
    return {**registered_user, "token": result.token}
