"""Exceptions raised by Askbox services."""


class AskboxError(Exception):
    """Base exception for Askbox operations."""
    pass


class NotConfiguredError(AskboxError):
    """No usable bot credential for the workspace."""

    def __init__(self, team_id: str):
        self.team_id = team_id
        super().__init__(f"No bot credential for workspace {team_id}")


class QuestionNotFoundError(AskboxError):
    """Question does not exist."""
    pass


class NotQuestionOwnerError(AskboxError):
    """Only the person who asked may perform this operation."""
    pass


class VotingClosedError(AskboxError):
    """Voting on the question has already been closed."""
    pass
