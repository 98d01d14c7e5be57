"""
Tests for the Question/Response registries and the Vote Ledger.

These tests verify:
1. One current vote per (response, voter)
2. Scores are derived from the votes on every read
3. Closing voting is a one-way transition
4. Deleting a question removes its responses and votes
"""

from types import SimpleNamespace

from sqlalchemy import func, select

from askbox.models import Response, Vote, VoteDirection, base, new_id
from askbox.services.questions import QuestionRegistry, ResponseRegistry
from askbox.services.votes import VoteLedger, format_score


async def make_response(session, text="An answer", ts="1700000000.000200") -> tuple[str, str]:
    question_id = await QuestionRegistry(session).create_question(
        team_id="T1", text="Why?", channel_id="C1", message_ts="1700000000.000100", user_id="U_ASKER"
    )
    response_id = await ResponseRegistry(session).create_response(question_id, text, ts)
    return question_id, response_id


# =============================================================================
# TEST: REGISTRIES
# =============================================================================


class TestQuestionRegistry:
    async def test_create_and_get(self, session):
        registry = QuestionRegistry(session)

        question_id = await registry.create_question(
            team_id="T1", text="Why?", channel_id="C1", message_ts="1.1", user_id="U1"
        )
        question = await registry.get_question(question_id)

        assert question_id.startswith("q_")
        assert question.text == "Why?"
        assert question.voting_closed is False

    def test_ids_are_time_sortable(self, monkeypatch):
        clock = iter([1_700_000_000.0015, 1_700_000_000.0025])
        monkeypatch.setattr(base, "time", SimpleNamespace(time=lambda: next(clock)))

        first = new_id("q")
        second = new_id("q")

        assert first < second
        assert first.startswith("q_1700000000001")

    async def test_get_unknown_question(self, session):
        assert await QuestionRegistry(session).get_question("q_missing") is None

    async def test_close_voting_only_transitions_once(self, session):
        registry = QuestionRegistry(session)
        question_id = await registry.create_question("T1", "a", "C1", "1.1", "U1")

        assert await registry.close_voting(question_id) is True
        assert await registry.close_voting(question_id) is False
        assert (await registry.get_question(question_id)).voting_closed is True

    async def test_responses_listed_in_creation_order(self, session):
        question_id, first = await make_response(session, "first", "1.2")
        responses = ResponseRegistry(session)
        second = await responses.create_response(question_id, "second", "1.3")
        third = await responses.create_response(question_id, "third", "1.4")

        assert await responses.list_response_ids(question_id) == [first, second, third]

    async def test_get_response_includes_question(self, session):
        question_id, response_id = await make_response(session)

        response = await ResponseRegistry(session).get_response(response_id)

        assert response.question.id == question_id
        assert response.question.channel_id == "C1"

    async def test_delete_question_cascades(self, session):
        question_id, response_id = await make_response(session)
        await VoteLedger(session).add_vote(response_id, "U1", VoteDirection.UPVOTE)

        assert await QuestionRegistry(session).delete_question(question_id) is True

        responses = await session.scalar(select(func.count()).select_from(Response))
        votes = await session.scalar(select(func.count()).select_from(Vote))
        assert responses == 0
        assert votes == 0


# =============================================================================
# TEST: VOTE LEDGER
# =============================================================================


class TestVoteLedger:
    async def test_score_counts_up_minus_down(self, session):
        _, response_id = await make_response(session)
        ledger = VoteLedger(session)

        await ledger.add_vote(response_id, "U1", VoteDirection.UPVOTE)
        await ledger.add_vote(response_id, "U2", VoteDirection.UPVOTE)
        await ledger.add_vote(response_id, "U3", VoteDirection.DOWNVOTE)

        tally = await ledger.get_votes(response_id)
        assert tally.upvoters == {"U1", "U2"}
        assert tally.downvoters == {"U3"}
        assert await ledger.score(response_id) == 1

    async def test_switching_direction_replaces_vote(self, session):
        _, response_id = await make_response(session)
        ledger = VoteLedger(session)

        await ledger.add_vote(response_id, "U1", VoteDirection.UPVOTE)
        await ledger.add_vote(response_id, "U1", VoteDirection.DOWNVOTE)

        tally = await ledger.get_votes(response_id)
        assert tally.upvoters == set()
        assert tally.downvoters == {"U1"}

        await ledger.remove_vote(response_id, "U1")

        tally = await ledger.get_votes(response_id)
        assert tally.upvoters == set()
        assert tally.downvoters == set()

    async def test_repeated_vote_counts_once(self, session):
        _, response_id = await make_response(session)
        ledger = VoteLedger(session)

        await ledger.add_vote(response_id, "U1", VoteDirection.UPVOTE)
        await ledger.add_vote(response_id, "U1", VoteDirection.UPVOTE)

        assert await ledger.score(response_id) == 1

    async def test_remove_missing_vote_is_noop(self, session):
        _, response_id = await make_response(session)
        ledger = VoteLedger(session)

        await ledger.remove_vote(response_id, "U_NOBODY")

        assert await ledger.score(response_id) == 0

    async def test_score_has_no_floor(self, session):
        _, response_id = await make_response(session)
        ledger = VoteLedger(session)

        for voter in ("U1", "U2", "U3"):
            await ledger.add_vote(response_id, voter, VoteDirection.DOWNVOTE)

        assert await ledger.score(response_id) == -3


class TestFormatScore:
    def test_positive_has_plus_sign(self):
        assert format_score(3) == "+3"

    def test_zero_and_negative(self):
        assert format_score(0) == "0"
        assert format_score(-2) == "-2"
