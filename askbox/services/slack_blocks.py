"""Block Kit and modal builders for Askbox messages."""

from .votes import format_score

RESPOND_ACTION_ID = "respond"
CLOSE_VOTING_ACTION_ID = "close_voting"
RESPONSE_MODAL_CALLBACK_ID = "submit_response"
RESPONSE_BLOCK_ID = "response_block"
RESPONSE_INPUT_ACTION_ID = "response_input"

# Reactions the bot adds to every response so voters can just click them
VOTE_REACTIONS = ("thumbsup", "thumbsdown")


def render_response_text(text: str, score: int) -> str:
    """Message body of a response: its text followed by the current points."""
    return f"{text}\n\nPoints: {format_score(score)}"


def question_fallback_text(text: str) -> str:
    return f"Anonymous question: {text}"


def _points_label(score: int) -> str:
    unit = "point" if abs(score) == 1 else "points"
    return f"{format_score(score)} {unit}"


class SlackBlocks:
    """Factory for creating Slack Block Kit structures."""

    @staticmethod
    def question(question_id: str, text: str) -> list[dict]:
        """An open question with Respond and Close Voting buttons."""
        return [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Anonymous question* :speech_balloon:\n{text}"
                }
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": "Responses are posted anonymously in the thread. Vote on them with :+1: and :-1:."
                    }
                ]
            },
            {
                "type": "actions",
                "block_id": f"question_{question_id}",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Respond", "emoji": True},
                        "style": "primary",
                        "action_id": RESPOND_ACTION_ID,
                        "value": question_id,
                    },
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Close Voting", "emoji": True},
                        "style": "danger",
                        "action_id": CLOSE_VOTING_ACTION_ID,
                        "value": question_id,
                        "confirm": {
                            "title": {"type": "plain_text", "text": "Close voting?"},
                            "text": {"type": "plain_text", "text": "No more responses will be accepted and the winner will be announced."},
                            "confirm": {"type": "plain_text", "text": "Close"},
                            "deny": {"type": "plain_text", "text": "Cancel"},
                        },
                    },
                ]
            }
        ]

    @staticmethod
    def question_closed(text: str) -> list[dict]:
        """A closed question: same text, no buttons."""
        return [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Anonymous question* :speech_balloon:\n{text}"
                }
            },
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": ":lock: Voting is closed."}
                ]
            }
        ]

    @staticmethod
    def no_responses_announcement() -> str:
        return ":checkered_flag: Voting closed. No responses were submitted."

    @staticmethod
    def no_positive_announcement() -> str:
        return ":checkered_flag: Voting closed. No response received positive votes."

    @staticmethod
    def winner_announcement(text: str, score: int) -> str:
        return f":trophy: Voting closed! The winning response ({_points_label(score)}):\n>{text}"


class SlackModals:
    """Factory for creating Slack Modal views."""

    @staticmethod
    def response(question_id: str, question_text: str) -> dict:
        """Modal for submitting an anonymous response."""
        display_question = question_text[:500] + "..." if len(question_text) > 500 else question_text

        return {
            "type": "modal",
            "callback_id": RESPONSE_MODAL_CALLBACK_ID,
            "private_metadata": question_id,
            "title": {"type": "plain_text", "text": "Anonymous Response", "emoji": True},
            "submit": {"type": "plain_text", "text": "Submit", "emoji": True},
            "close": {"type": "plain_text", "text": "Cancel", "emoji": True},
            "blocks": [
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": f"*Question:*\n>{display_question}"}
                },
                {
                    "type": "input",
                    "block_id": RESPONSE_BLOCK_ID,
                    "element": {
                        "type": "plain_text_input",
                        "action_id": RESPONSE_INPUT_ACTION_ID,
                        "multiline": True,
                        "placeholder": {"type": "plain_text", "text": "Your answer"}
                    },
                    "label": {"type": "plain_text", "text": "Response", "emoji": True},
                    "hint": {"type": "plain_text", "text": "Your name is not shown with your response"}
                }
            ]
        }
