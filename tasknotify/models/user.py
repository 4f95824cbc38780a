"""User entity model.

Users are owned by the account subsystem; the notification pipeline only
reads them to resolve assignee/creator references and recipient addresses.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel


class UserBase(SQLModel):
    """Base User schema."""

    username: str = Field(max_length=100, unique=True, index=True)
    email: str = Field(max_length=255, unique=True, index=True)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)


class User(UserBase, table=True):
    """User database model."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def display_name(self) -> str:
        """Name used to greet the user in notifications."""
        return self.first_name or self.username
