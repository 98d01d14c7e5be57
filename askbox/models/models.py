"""SQLAlchemy ORM Models for Askbox."""

from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, CreatedAtMixin, TimestampMixin, new_id


# =============================================================================
# ENUMS
# =============================================================================


class VoteDirection(str, PyEnum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


# =============================================================================
# INSTALLATIONS
# =============================================================================


class Installation(Base, TimestampMixin):
    """Bot credential for one Slack workspace. The token is stored encrypted."""

    __tablename__ = "installations"

    team_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    enterprise_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bot_token: Mapped[str] = mapped_column(
        Text, nullable=False,
        comment="Fernet ciphertext of the bot token"
    )
    bot_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bot_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bot_scopes: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="Comma-separated OAuth scopes"
    )
    is_bootstrap: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False,
        comment="Token came from SLACK_BOT_TOKEN rather than OAuth"
    )


# =============================================================================
# QUESTIONS & RESPONSES
# =============================================================================


class Question(Base, CreatedAtMixin):
    """An anonymous question posted to a channel."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: new_id("q")
    )
    team_id: Mapped[str] = mapped_column(String(64), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message_ts: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(64), nullable=False,
        comment="Slack user who asked; only used to authorize closing"
    )
    voting_closed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )

    responses: Mapped[list["Response"]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="Response.created_at",
    )

    __table_args__ = (
        Index("ix_questions_team_id", "team_id"),
    )

    def __repr__(self) -> str:
        return f"<Question {self.id} team={self.team_id} closed={self.voting_closed}>"


class Response(Base, CreatedAtMixin):
    """An anonymous response, posted as a threaded reply to its question."""

    __tablename__ = "responses"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: new_id("r")
    )
    question_id: Mapped[str] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    message_ts: Mapped[str] = mapped_column(String(32), nullable=False)

    question: Mapped[Question] = relationship(back_populates="responses")
    votes: Mapped[list["Vote"]] = relationship(
        back_populates="response",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_responses_question_id", "question_id"),
        Index("ix_responses_message_ts", "message_ts"),
    )

    def __repr__(self) -> str:
        return f"<Response {self.id} question={self.question_id}>"


# =============================================================================
# VOTES
# =============================================================================


class Vote(Base, CreatedAtMixin):
    """One voter's current vote on one response."""

    __tablename__ = "votes"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: new_id("v")
    )
    response_id: Mapped[str] = mapped_column(
        ForeignKey("responses.id", ondelete="CASCADE"), nullable=False
    )
    voter_id: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[VoteDirection] = mapped_column(
        Enum(VoteDirection, name="vote_direction", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )

    response: Mapped[Response] = relationship(back_populates="votes")

    __table_args__ = (
        # At most one vote per voter per response
        UniqueConstraint("response_id", "voter_id", name="uq_votes_response_voter"),
        Index("ix_votes_response_id", "response_id"),
    )
