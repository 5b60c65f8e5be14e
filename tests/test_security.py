from home_services_api.app.core import security
from home_services_api.app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    generate_otp,
    hash_password,
    hash_token,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = hash_password("correct horse")
    assert "$" in hashed
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_password_hashes_are_salted():
    assert hash_password("same") != hash_password("same")


def test_verify_password_rejects_malformed_hash():
    assert not verify_password("anything", "not-a-hash")


def test_access_token_carries_subject_and_type():
    payload = decode_access_token(create_access_token({"sub": "asha@example.com"}))
    assert payload["sub"] == "asha@example.com"
    assert payload["type"] == "access"


def test_refresh_token_is_not_an_access_token():
    refresh = create_refresh_token({"sub": "asha@example.com"})
    assert decode_access_token(refresh) is None
    assert decode_refresh_token(refresh)["sub"] == "asha@example.com"


def test_expired_token_is_rejected(monkeypatch):
    token = create_access_token({"sub": "asha@example.com"}, expires_delta=60)
    real_time = security.time.time
    monkeypatch.setattr(security.time, "time", lambda: real_time() + 120)
    assert decode_access_token(token) is None


def test_tampered_token_is_rejected():
    header, payload, signature = create_access_token({"sub": "asha@example.com"}).split(".")
    forged = create_access_token({"sub": "admin@example.com"}).split(".")[1]
    assert decode_access_token(f"{header}.{forged}.{signature}") is None
    assert decode_access_token("garbage") is None


def test_token_hash_and_otp_format():
    assert hash_token("abc") == hash_token("abc")
    assert hash_token("abc") != hash_token("abd")
    otp = generate_otp()
    assert len(otp) == 6 and otp.isdigit()
