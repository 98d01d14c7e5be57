"""SQLAlchemy ORM Models for Askbox."""

from .base import Base, CreatedAtMixin, TimestampMixin, new_id
from .models import (
    Installation,
    Question,
    Response,
    Vote,
    VoteDirection,
)

__all__ = [
    # Base
    "Base",
    "CreatedAtMixin",
    "TimestampMixin",
    "new_id",
    # Enums
    "VoteDirection",
    # Credentials
    "Installation",
    # Questions
    "Question",
    "Response",
    "Vote",
]
