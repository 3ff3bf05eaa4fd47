# tests/test_admin.py
import pytest

from savings_service import admin
from savings_service.auth import AuthService
from savings_service.credentials import CredentialStore
from savings_service.errors import DeviceNotRegistered, DeviceNotVerified, UserNotFound

from .conftest import TEST_DEVICE, TEST_EMAIL, TEST_PASSWORD


def test_unknown_user_or_device(db):
    AuthService(db).register("carol@example.com", "secret1", "dev-1")
    with pytest.raises(UserNotFound):
        admin.set_device_verification(db, "nobody@example.com", "dev-1")
    with pytest.raises(DeviceNotRegistered):
        admin.set_device_verification(db, "carol@example.com", "dev-2")


def test_revoke_blocks_login_again(db, verified_user):
    AuthService(db).login(TEST_EMAIL, TEST_PASSWORD, TEST_DEVICE)
    admin.set_device_verification(db, TEST_EMAIL, TEST_DEVICE, verified=False)
    with pytest.raises(DeviceNotVerified):
        AuthService(db).login(TEST_EMAIL, TEST_PASSWORD, TEST_DEVICE)


def test_cli_entry_point(monkeypatch, session_factory, db):
    AuthService(db).register("carol@example.com", "secret1", "dev-1")
    monkeypatch.setattr(admin, "SessionLocal", session_factory)

    assert admin.main(["carol@example.com", "dev-1"]) == 0
    db.expire_all()
    user = CredentialStore(db).find_user_by_email("carol@example.com")
    assert CredentialStore(db).find_device(user.id, "dev-1").is_verified is True

    assert admin.main(["carol@example.com", "missing-device"]) == 1
