import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Profile(SQLModel, table=True):
    """
    Persistent customer profile.

    Identity:
      - id: MUST match Supabase auth.users.id (UUID from JWT "sub")

    Role:
      - "user" | "admin"
      - guests are represented by the absence of a token.

    Passwords live in Supabase Auth; this table only mirrors identity,
    contact details and the application role.
    """

    __tablename__ = "profiles"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Matches Supabase auth.users.id",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Email from Supabase auth.users",
    )

    full_name: str = Field(
        max_length=100,
        description="Customer display name; first part of email by default",
    )

    phone_number: str | None = Field(
        default=None,
        max_length=30,
    )

    # Application role (not Supabase RLS role)
    role: str = Field(
        default="user",
        index=True,
        description="Application role: user | admin",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
