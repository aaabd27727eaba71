"""Password hashing, JWT issuance and CPF / signature cryptography."""

import hashlib
import hmac
import json
import re
import secrets
import string
import unicodedata
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import bcrypt
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from jose import JWTError, jwt

from app.core.config import settings

IV_LENGTH = 16
TAG_LENGTH = 16

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_TEMP = "temp"

_SLUG_ALPHABET = string.ascii_lowercase + string.digits


class TokenError(Exception):
    """Raised when a JWT cannot be decoded or has the wrong type."""


class CpfDecryptionError(Exception):
    """Raised when an encrypted CPF cannot be decrypted."""


# ============================================================================
# Passwords
# ============================================================================


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Check a password against a bcrypt hash. Empty hashes never match."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ============================================================================
# JWT
# ============================================================================


def _encode(payload: dict[str, Any], expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {**payload, "iat": now, "exp": now + expires_delta}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: str, email: str) -> str:
    """Issue a short-lived access token."""
    return _encode(
        {"sub": user_id, "email": email, "type": TOKEN_TYPE_ACCESS},
        timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_temp_token(user_id: str, email: str) -> str:
    """Issue the token that carries a login through the MFA step."""
    return _encode(
        {"sub": user_id, "email": email, "type": TOKEN_TYPE_TEMP},
        timedelta(minutes=settings.JWT_TEMP_TOKEN_EXPIRE_MINUTES),
    )


def decode_token(token: str, expected_type: str = TOKEN_TYPE_ACCESS) -> dict[str, Any]:
    """
    Decode and validate a JWT.

    Raises:
        TokenError: If the signature, expiry or token type is invalid
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise TokenError(str(e)) from e

    if payload.get("type") != expected_type:
        raise TokenError(f"Expected {expected_type} token")
    if not payload.get("sub"):
        raise TokenError("Token has no subject")
    return payload


# ============================================================================
# Random values
# ============================================================================


def generate_token(length: int = 64) -> str:
    """Hex string of `length` random bytes (refresh and reset tokens)."""
    return secrets.token_hex(length)


def generate_otp(length: int = 6) -> str:
    """Numeric one-time code."""
    return "".join(str(b % 10) for b in secrets.token_bytes(length))


def slugify(name: str) -> str:
    """URL slug for an organization name with a random suffix."""
    normalized = unicodedata.normalize("NFD", name.lower())
    ascii_name = "".join(c for c in normalized if unicodedata.category(c) != "Mn")
    base = re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")
    suffix = "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(6))
    return f"{base}-{suffix}" if base else suffix


# ============================================================================
# CPF
# ============================================================================


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    kdf = Scrypt(salt=b"salt", length=32, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


def normalize_cpf(cpf: str) -> str:
    """Strip punctuation, keep digits."""
    return re.sub(r"\D", "", cpf)


def format_cpf(cpf: str) -> str:
    """Format digits as xxx.xxx.xxx-xx."""
    digits = normalize_cpf(cpf)
    if len(digits) != 11:
        return digits
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def hash_cpf(cpf: str) -> str:
    """Deterministic lookup hash (sha256 hex of the digits)."""
    return hashlib.sha256(normalize_cpf(cpf).encode("utf-8")).hexdigest()


def cpf_last_four(cpf: str) -> str:
    return normalize_cpf(cpf)[-4:]


def encrypt_cpf(cpf: str) -> str:
    """
    Encrypt a CPF with AES-256-GCM.

    Output is hex of iv || tag || ciphertext.
    """
    iv = secrets.token_bytes(IV_LENGTH)
    sealed = AESGCM(_derive_key(settings.ENCRYPTION_KEY)).encrypt(
        iv, normalize_cpf(cpf).encode("utf-8"), None
    )
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return (iv + tag + ciphertext).hex()


def decrypt_cpf(encrypted: str) -> str:
    """
    Decrypt a stored CPF and return it formatted.

    Raises:
        CpfDecryptionError: If the value is malformed or was tampered with
    """
    try:
        raw = bytes.fromhex(encrypted)
        iv = raw[:IV_LENGTH]
        tag = raw[IV_LENGTH : IV_LENGTH + TAG_LENGTH]
        ciphertext = raw[IV_LENGTH + TAG_LENGTH :]
        plain = AESGCM(_derive_key(settings.ENCRYPTION_KEY)).decrypt(iv, ciphertext + tag, None)
    except (ValueError, InvalidTag) as e:
        raise CpfDecryptionError("Falha ao descriptografar CPF") from e
    return format_cpf(plain.decode("utf-8"))


# ============================================================================
# Document signatures
# ============================================================================


def canonical_json(data: Any) -> str:
    """Compact JSON with keys sorted at every level."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def iso_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_signature_hash(payload: dict[str, Any], timestamp: datetime) -> str:
    """sha256 of canonical payload, signing time and the server pepper."""
    data = f"{canonical_json(payload)}|{iso_timestamp(timestamp)}|{settings.SIGNATURE_PEPPER}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def verify_signature_hash(payload: dict[str, Any], timestamp: datetime, signature: str) -> bool:
    expected = generate_signature_hash(payload, timestamp)
    return hmac.compare_digest(expected, signature)
