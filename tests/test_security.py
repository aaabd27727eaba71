"""
Tests for password hashing, tokens and CPF / signature cryptography.
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from app.core.config import settings
from app.core.security import (
    IV_LENGTH,
    TAG_LENGTH,
    TOKEN_TYPE_TEMP,
    CpfDecryptionError,
    TokenError,
    canonical_json,
    cpf_last_four,
    create_access_token,
    create_temp_token,
    decode_token,
    decrypt_cpf,
    encrypt_cpf,
    format_cpf,
    generate_otp,
    generate_signature_hash,
    generate_token,
    hash_cpf,
    hash_password,
    iso_timestamp,
    normalize_cpf,
    slugify,
    verify_password,
    verify_signature_hash,
)


# ============================================================================
# Passwords
# ============================================================================


def test_password_hash_verifies():
    hashed = hash_password("Senha123")

    assert hashed != "Senha123"
    assert verify_password("Senha123", hashed)
    assert not verify_password("senha123", hashed)


def test_verify_password_rejects_empty_or_malformed_hash():
    assert not verify_password("Senha123", "")
    assert not verify_password("Senha123", None)
    assert not verify_password("Senha123", "not-a-bcrypt-hash")


# ============================================================================
# Tokens
# ============================================================================


def test_access_token_round_trip():
    token = create_access_token("user-1", "medico@clinica.com.br")
    payload = decode_token(token)

    assert payload["sub"] == "user-1"
    assert payload["email"] == "medico@clinica.com.br"
    assert payload["type"] == "access"


def test_temp_token_is_not_an_access_token():
    """The MFA temp token must not authenticate API calls."""
    token = create_temp_token("user-1", "medico@clinica.com.br")

    with pytest.raises(TokenError):
        decode_token(token)

    assert decode_token(token, expected_type=TOKEN_TYPE_TEMP)["sub"] == "user-1"


def test_foreign_or_malformed_token_rejected():
    forged = jwt.encode(
        {"sub": "user-1", "type": "access", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "another-secret",
        algorithm=settings.JWT_ALGORITHM,
    )

    with pytest.raises(TokenError):
        decode_token(forged)
    with pytest.raises(TokenError):
        decode_token("not.a.jwt")


def test_expired_token_rejected():
    expired = jwt.encode(
        {"sub": "user-1", "type": "access", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )

    with pytest.raises(TokenError):
        decode_token(expired)


def test_random_values():
    assert len(generate_token(32)) == 64
    assert generate_token() != generate_token()

    code = generate_otp(6)
    assert len(code) == 6
    assert code.isdigit()


def test_slugify_strips_accents_and_adds_suffix():
    slug = slugify("Consultório Dra. Júlia")

    base, suffix = slug.rsplit("-", 1)
    assert base == "consultorio-dra-julia"
    assert len(suffix) == 6
    assert slugify("Consultório Dra. Júlia") != slug


# ============================================================================
# CPF
# ============================================================================


def test_cpf_normalization_and_format():
    assert normalize_cpf("529.982.247-25") == "52998224725"
    assert format_cpf("52998224725") == "529.982.247-25"
    assert cpf_last_four("529.982.247-25") == "4725"


def test_cpf_hash_ignores_punctuation():
    assert hash_cpf("529.982.247-25") == hash_cpf("52998224725")
    assert len(hash_cpf("52998224725")) == 64


def test_cpf_encryption_round_trip():
    encrypted = encrypt_cpf("52998224725")

    assert "52998224725" not in encrypted
    assert len(bytes.fromhex(encrypted)) == IV_LENGTH + TAG_LENGTH + 11
    assert decrypt_cpf(encrypted) == "529.982.247-25"


def test_cpf_encryption_uses_random_iv():
    assert encrypt_cpf("52998224725") != encrypt_cpf("52998224725")


def test_cpf_decryption_detects_tampering():
    raw = bytearray(bytes.fromhex(encrypt_cpf("52998224725")))
    raw[-1] ^= 0x01

    with pytest.raises(CpfDecryptionError):
        decrypt_cpf(raw.hex())

    with pytest.raises(CpfDecryptionError):
        decrypt_cpf("zz-not-hex")


# ============================================================================
# Document signatures
# ============================================================================


def test_canonical_json_sorts_nested_keys():
    assert canonical_json({"b": 1, "a": {"d": 2, "c": [3, {"f": 4, "e": 5}]}}) == (
        '{"a":{"c":[3,{"e":5,"f":4}],"d":2},"b":1}'
    )


def test_iso_timestamp_millisecond_utc():
    moment = datetime(2025, 3, 1, 12, 30, 15, 123456, tzinfo=timezone(timedelta(hours=-3)))

    assert iso_timestamp(moment) == "2025-03-01T15:30:15.123Z"
    assert iso_timestamp(datetime(2025, 3, 1, 15, 30, 15)) == "2025-03-01T15:30:15.000Z"


def test_signature_hash_verifies_and_ignores_key_order():
    signed_at = datetime(2025, 3, 1, 15, 30, tzinfo=timezone.utc)
    payload = {"patientId": "p1", "clinicalData": {"cid10": "G40", "hda": "crises"}}
    signature = generate_signature_hash(payload, signed_at)

    reordered = {"clinicalData": {"hda": "crises", "cid10": "G40"}, "patientId": "p1"}
    assert verify_signature_hash(reordered, signed_at, signature)


def test_signature_hash_detects_changes():
    signed_at = datetime(2025, 3, 1, 15, 30, tzinfo=timezone.utc)
    payload = {"dosage": "5 gotas 2x ao dia"}
    signature = generate_signature_hash(payload, signed_at)

    assert not verify_signature_hash({"dosage": "10 gotas 2x ao dia"}, signed_at, signature)
    assert not verify_signature_hash(payload, signed_at + timedelta(milliseconds=1), signature)
