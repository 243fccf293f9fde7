from datetime import datetime, timedelta

import pytest
from jose import JWTError, jwt

from dms.auth.errors import MalformedToken, Unauthenticated
from dms.auth.guard import authenticate
from dms.auth.rbac import permissions_for
from dms.auth.roles import Role
from dms.auth.security import (
    JWT_ACCESS_SECRET,
    JWT_ALG,
    build_access_claims,
    decode_access_token,
    encode_access_token,
    format_refresh_token,
    generate_refresh_secret,
    hash_password,
    hash_token,
    new_refresh_record_id,
    parse_refresh_token,
    refresh_record_id_of,
    token_matches,
    verify_password,
)


def test_password_hash_roundtrip():
    hashed = hash_password("Secret#1234")

    assert hashed.startswith("$argon2")
    assert verify_password("Secret#1234", hashed)
    assert not verify_password("Secret#12345", hashed)


@pytest.mark.parametrize("stored", [None, "", "plaintext", "$argon2id$garbage"])
def test_verify_password_against_corrupt_hash_is_false(stored):
    assert verify_password("Secret#1234", stored) is False


def test_access_token_carries_claims():
    now = datetime.utcnow()
    claims = build_access_claims(
        user_id="u_1", role=Role.TENANT_MANAGER, tenant_id="T1", refresh_record_id="rt_1", now=now
    )

    decoded = decode_access_token(encode_access_token(claims))

    assert decoded.subject_id == "u_1"
    assert decoded.refresh_record_id == "rt_1"
    assert decoded.role is Role.TENANT_MANAGER
    assert decoded.permissions == permissions_for(Role.TENANT_MANAGER)
    assert decoded.tenant_id == "T1"
    assert abs((decoded.expires_at - claims.expires_at).total_seconds()) < 1


def test_system_admin_token_has_no_tenant():
    claims = build_access_claims(
        user_id="u_1", role="ADMIN", tenant_id=None, refresh_record_id="rt_1", now=datetime.utcnow()
    )

    token = encode_access_token(claims)

    assert "mid" not in jwt.get_unverified_claims(token)
    assert decode_access_token(token).tenant_id is None


def test_build_claims_rejects_unknown_role():
    with pytest.raises(ValueError):
        build_access_claims(
            user_id="u_1", role="ROOT", tenant_id=None, refresh_record_id="rt_1", now=datetime.utcnow()
        )


def test_expired_access_token_is_unauthenticated():
    claims = build_access_claims(
        user_id="u_1",
        role=Role.TENANT_USER,
        tenant_id="T1",
        refresh_record_id="rt_1",
        now=datetime.utcnow() - timedelta(hours=1),
    )

    with pytest.raises(Unauthenticated):
        authenticate(encode_access_token(claims))


def _signed(payload, secret=JWT_ACCESS_SECRET):
    base = {
        "typ": "access",
        "sub": "u_1",
        "rid": "rt_1",
        "role": "MERCHANT_USER",
        "perms": ["doc:view"],
        "exp": datetime.utcnow() + timedelta(minutes=5),
    }
    base.update(payload)
    return jwt.encode(base, secret, algorithm=JWT_ALG)


@pytest.mark.parametrize(
    "token",
    [
        _signed({}, secret="some-other-secret"),
        _signed({"typ": "refresh"}),
        _signed({"role": "ROOT"}),
        _signed({"perms": "doc:view"}),
        _signed({"sub": ""}),
        "not-a-jwt",
    ],
)
def test_decode_rejects_foreign_or_misshapen_tokens(token):
    with pytest.raises(JWTError):
        decode_access_token(token)


def test_missing_token_is_unauthenticated():
    with pytest.raises(Unauthenticated) as excinfo:
        authenticate(None)
    assert excinfo.value.message == "Missing token"


def test_refresh_token_format():
    record_id = new_refresh_record_id()
    secret = generate_refresh_secret()
    raw = format_refresh_token(record_id, secret)

    assert record_id.startswith("rt_")
    assert parse_refresh_token(raw) == (record_id, secret)
    assert refresh_record_id_of(raw) == record_id


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "abc",
        "rt_1.",
        ".AAAAAAAAAAAAAAAAAAAA",
        "rt_1.tooshort",
        "rt 1.AAAAAAAAAAAAAAAAAAAA",
        "rt_1.AAAAAAAAAAAAAAAAAAAA\n",
        "rt_1\n.AAAAAAAAAAAAAAAAAAAA",
    ],
)
def test_parse_refresh_token_rejects_malformed(raw):
    with pytest.raises(MalformedToken):
        parse_refresh_token(raw)


def test_refresh_record_id_is_read_without_checking_the_secret():
    assert refresh_record_id_of("rt_1.x") == "rt_1"
    assert refresh_record_id_of("bad id.x") is None
    assert refresh_record_id_of("rt_1\n") is None
    assert refresh_record_id_of(None) is None


def test_token_digest_comparison():
    secret = generate_refresh_secret()
    digest = hash_token(secret)

    assert digest != secret
    assert token_matches(secret, digest)
    assert not token_matches(generate_refresh_secret(), digest)
    assert not token_matches(secret, None)
