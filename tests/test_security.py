import pytest
from itsdangerous import URLSafeTimedSerializer

from config import get_settings
from security import hash_pin, issue_user_token, read_user_token, validate_pin, verify_pin


def test_user_token_round_trip() -> None:
    token = issue_user_token("user-42")

    assert read_user_token(token) == "user-42"


def test_user_token_rejects_tampering_and_foreign_secret() -> None:
    token = issue_user_token("user-42")

    assert read_user_token(token + "x") is None
    assert read_user_token("not-a-token") is None
    forged = URLSafeTimedSerializer("other-secret", salt="user-token").dumps({"u": "admin"})
    assert read_user_token(forged) is None


def test_user_token_expires() -> None:
    token = issue_user_token("user-42")

    assert read_user_token(token, max_age_hours=-1) is None


def test_issue_user_token_requires_user() -> None:
    with pytest.raises(ValueError):
        issue_user_token("")


def test_pin_hash_and_verify() -> None:
    pin_hash = hash_pin("1234")

    assert pin_hash != "1234"
    assert verify_pin("1234", pin_hash)
    assert not verify_pin("4321", pin_hash)
    assert not verify_pin("1234", None)
    assert not verify_pin("1234", "garbage")


@pytest.mark.parametrize("pin", ["123", "12345", "abcd", "12 4", ""])
def test_validate_pin_rejects_malformed(pin) -> None:
    with pytest.raises(ValueError):
        validate_pin(pin)


def test_user_token_carries_only_the_user_id() -> None:
    token = issue_user_token("user-42")

    payload = URLSafeTimedSerializer(
        get_settings().token_secret, salt="user-token"
    ).loads(token)

    assert payload == {"u": "user-42"}
