from __future__ import annotations

import time

import jwt

from auth_service.security.passwords import PasswordHasher
from auth_service.security.tokens import AccessClaims, generate_opaque_token, hash_opaque_token


def _claims(**overrides) -> AccessClaims:
    values = {
        "account_id": "3f1c2a0e-8f7b-4a55-9a67-0d3e3c5b8e21",
        "email": "ada@x.com",
        "email_verified": True,
        "name": "Ada",
        "role": "admin",
        "photo": None,
    }
    values.update(overrides)
    return AccessClaims(**values)


def test_access_token_round_trips_profile_claims(codec):
    before = time.time()
    token = codec.issue_access_token(_claims())

    claims = codec.verify_access_token(token)

    assert claims is not None
    assert claims.account_id == "3f1c2a0e-8f7b-4a55-9a67-0d3e3c5b8e21"
    assert claims.role == "admin"
    assert claims.email_verified is True
    assert before <= claims.issued_at <= time.time()


def test_refresh_token_embeds_only_the_account_id(codec, settings):
    token = codec.issue_refresh_token("acct-1")

    payload = jwt.decode(token, settings.refresh_token_secret, algorithms=["HS256"], issuer=settings.jwt_issuer)
    assert set(payload) == {"iss", "sub", "typ", "iat", "exp"}
    assert payload["exp"] - int(payload["iat"]) == settings.refresh_token_ttl_seconds
    assert codec.verify_refresh_token(token).account_id == "acct-1"


def test_token_types_are_not_interchangeable(codec):
    access = codec.issue_access_token(_claims())
    refresh = codec.issue_refresh_token("acct-1")

    assert codec.verify_refresh_token(access) is None
    assert codec.verify_access_token(refresh) is None


def test_verification_returns_none_for_tampered_or_malformed_tokens(codec):
    header, _, signature = codec.issue_access_token(_claims()).split(".")
    _, forged_payload, _ = codec.issue_access_token(_claims(role="superuser")).split(".")
    tampered = ".".join([header, forged_payload, signature])

    assert codec.verify_access_token(tampered) is None
    assert codec.verify_access_token("not.a.jwt") is None
    assert codec.verify_access_token("") is None


def test_verification_returns_none_for_expired_tokens(codec, settings):
    now = int(time.time())
    expired = jwt.encode(
        {"iss": settings.jwt_issuer, "sub": "acct-1", "typ": "refresh", "iat": now - 120, "exp": now - 60},
        settings.refresh_token_secret,
        algorithm="HS256",
    )

    assert codec.verify_refresh_token(expired) is None


def test_verification_rejects_foreign_issuer(codec, settings):
    now = int(time.time())
    foreign = jwt.encode(
        {"iss": "someone-else", "sub": "acct-1", "typ": "refresh", "iat": now, "exp": now + 60},
        settings.refresh_token_secret,
        algorithm="HS256",
    )

    assert codec.verify_refresh_token(foreign) is None


def test_opaque_tokens_are_random_and_hash_deterministically():
    token, token_hash = generate_opaque_token()
    other_token, other_hash = generate_opaque_token()

    assert token != other_token
    assert token_hash != other_hash
    assert token_hash == hash_opaque_token(token)
    assert token not in token_hash
    assert len(token_hash) == 64


def test_password_hasher_verifies_and_rejects():
    hasher = PasswordHasher(rounds=4)
    hashed = hasher.hash("pw12345678")

    assert hashed != "pw12345678"
    assert hasher.verify("pw12345678", hashed)
    assert not hasher.verify("wrong", hashed)
    assert not hasher.verify("pw12345678", None)
    assert not hasher.verify("pw12345678", "not-a-bcrypt-hash")
