# tests/test_utils.py
from datetime import timedelta

import pytest
from jose import jwt

from savings_service.errors import InvalidToken
from savings_service import utils


def test_password_hash_roundtrip():
    hashed = utils.get_password_hash("password123")
    assert hashed != "password123"
    assert utils.verify_password("password123", hashed)
    assert not utils.verify_password("password124", hashed)


def test_verify_password_with_unknown_hash_format():
    assert utils.verify_password("password123", "not-a-hash") is False


def test_token_carries_user_id_and_one_hour_expiry():
    token = utils.create_access_token(7)
    assert utils.verify_token(token) == 7

    claims = jwt.get_unverified_claims(token)
    assert claims["sub"] == "7"
    assert claims["exp"] - claims["iat"] == utils.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def test_expired_token_is_invalid():
    token = utils.create_access_token(7, expires_delta=timedelta(seconds=-1))
    with pytest.raises(InvalidToken):
        utils.verify_token(token)


def test_token_signed_with_other_key_is_invalid():
    forged = jwt.encode({"sub": "7"}, "another-secret", algorithm=utils.ALGORITHM)
    with pytest.raises(InvalidToken):
        utils.verify_token(forged)


@pytest.mark.parametrize("payload", [{"foo": "bar"}, {"sub": "not-a-number"}])
def test_token_with_bad_subject_is_invalid(payload):
    token = jwt.encode(payload, utils.SECRET_KEY, algorithm=utils.ALGORITHM)
    with pytest.raises(InvalidToken):
        utils.verify_token(token)
