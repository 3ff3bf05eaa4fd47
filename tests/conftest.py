# tests/conftest.py
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from savings_service import main
from savings_service.admin import set_device_verification
from savings_service.auth import AuthService
from savings_service.db import create_db_engine, get_db, init_db
from savings_service.notifications import NotificationSink

TEST_EMAIL = "testuser@example.com"
TEST_PASSWORD = "password123"
TEST_DEVICE = "device-abc"


class RecordingNotifier(NotificationSink):
    """Guarda las notificaciones en memoria en vez de enviarlas."""

    def __init__(self):
        self.sent = []

    def send_to_user(self, db, user_id, title, body, data=None):
        self.sent.append({"user_id": user_id, "title": title, "body": body, "data": data})

    @property
    def titles(self):
        return [m["title"] for m in self.sent]


class FailingNotifier(NotificationSink):
    def send_to_user(self, db, user_id, title, body, data=None):
        raise RuntimeError("push provider unavailable")


@pytest.fixture
def engine(tmp_path):
    """Base SQLite en archivo (una por test) para que varios hilos tengan su propia conexión."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'savings_test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def verified_user(session_factory):
    """Usuario registrado con su dispositivo ya verificado por un administrador."""
    session = session_factory()
    try:
        user = AuthService(session).register(TEST_EMAIL, TEST_PASSWORD, TEST_DEVICE, "ExponentPushToken[abc123]")
        set_device_verification(session, TEST_EMAIL, TEST_DEVICE)
        return user.id
    finally:
        session.close()


@pytest.fixture
def client(session_factory, notifier):
    """TestClient con la base de datos y el notificador sustituidos."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[main.get_notifier] = lambda: notifier
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client, verified_user):
    r = client.post("/auth/login", json={"email": TEST_EMAIL, "password": TEST_PASSWORD, "deviceId": TEST_DEVICE})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}
