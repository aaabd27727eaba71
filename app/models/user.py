"""User model - Platform accounts with authentication."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, UTCDateTime


class User(BaseModel):
    """
    User model.

    A user can belong to several organizations through memberships.
    Authentication via email/password (hashed with bcrypt). Invited users
    are created with an empty password hash until they set one.
    """

    __tablename__ = "users"

    # Authentication
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Email address, lowercased (used for login)",
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        comment="Bcrypt password hash (empty for pending invites)",
    )

    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
        comment="Whether user account is active",
    )

    email_verified: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
        comment="Whether the email address was confirmed",
    )

    mfa_enabled: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
        comment="Whether login requires an emailed one-time code",
    )

    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Last successful login",
    )

    # Profile
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Full name of user",
    )

    phone: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Contact phone number",
    )

    avatar_url: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Avatar image URL",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<User {self.email}>"
