"""Authentication models - Refresh tokens and one-time codes."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, UTCDateTime, enum_column


class OtpType(str, Enum):
    """Purpose of a one-time code."""

    EMAIL_VERIFY = "EMAIL_VERIFY"
    MFA = "MFA"
    PASSWORD_RESET = "PASSWORD_RESET"


class RefreshToken(BaseModel):
    """Opaque refresh token. Rotated on every use."""

    __tablename__ = "refresh_tokens"

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Token owner",
    )

    token: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        index=True,
        comment="Random hex token",
    )

    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="Expiry time",
    )

    revoked_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Set when the token is rotated or logged out",
    )


class OtpCode(BaseModel):
    """One-time code for email verification, MFA or password reset."""

    __tablename__ = "otp_codes"

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Code owner",
    )

    code: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
        comment="Numeric code or reset token",
    )

    type: Mapped[OtpType] = mapped_column(
        enum_column(OtpType, "otp_type"),
        nullable=False,
        comment="Purpose of the code",
    )

    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="Expiry time",
    )

    used_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Set once the code is consumed",
    )
