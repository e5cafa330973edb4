"""Tests for the attempt session state machine"""
import asyncio

import pytest

from conftest import make_quiz, make_result, make_session, run
from quiz_player.core.errors import (
    AlreadyStarted,
    AttemptExpiredAlready,
    AttemptStartFailed,
    IncompleteAnswers,
    ResultUnavailable,
    ServiceUnavailable,
    SessionClosed,
    SessionNotStarted,
    SubmissionInProgress,
    SubmitFailed,
)
from quiz_player.core.models import AttemptStatus, OptionIndex, Provenance, SessionState


def timed_quiz(**kwargs):
    return make_quiz(provenance=Provenance.COMMUNITY, time_limit_seconds=60, require_all_answers=False, **kwargs)


class TestStart:
    """Opening the attempt"""

    def test_start_enters_in_progress(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            attempt = await session.start()
            return session, attempt

        session, attempt = run(scenario())
        assert session.current_state() is SessionState.IN_PROGRESS
        assert attempt.id == "attempt-1"
        assert attempt.status is AttemptStatus.IN_PROGRESS
        assert session.current_index == 0
        assert ticker.is_active
        assert session.accountant.ledger.per_question == {"q1": 0.0, "q2": 0.0, "q3": 0.0}

    def test_start_twice_rejected(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            await session.start()

        with pytest.raises(AlreadyStarted):
            run(scenario())
        assert attempts.started == ["quiz-1"]

    def test_start_while_starting_rejected(self, attempts, clock, ticker):
        """Only one start call reaches the server"""
        async def scenario():
            attempts.start_gate = asyncio.Event()
            session = make_session(make_quiz(), attempts, clock, ticker)
            pending = asyncio.create_task(session.start())
            await asyncio.sleep(0)
            assert session.is_pending
            with pytest.raises(AlreadyStarted):
                await session.start()
            attempts.start_gate.set()
            await pending
            return session

        session = run(scenario())
        assert attempts.started == ["quiz-1"]
        assert session.current_state() is SessionState.IN_PROGRESS

    def test_start_failure_returns_to_idle(self, attempts, clock, ticker):
        """A failed start can be retried"""
        async def scenario():
            attempts.start_error = ServiceUnavailable("down")
            session = make_session(make_quiz(), attempts, clock, ticker)
            with pytest.raises(AttemptStartFailed):
                await session.start()
            assert session.current_state() is SessionState.IDLE
            assert not ticker.is_active
            attempts.start_error = None
            await session.start()
            return session

        session = run(scenario())
        assert session.current_state() is SessionState.IN_PROGRESS
        assert session.attempt.id == "attempt-2"

    def test_input_before_start_is_misuse(self, attempts, clock, ticker):
        session = make_session(make_quiz(), attempts, clock, ticker)
        with pytest.raises(SessionNotStarted):
            session.answer("q1", "B")
        with pytest.raises(SessionNotStarted):
            run(session.submit())


class TestNavigationAndAnswers:
    """Moving between questions"""

    def test_navigate_keeps_answers(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q1", "C")
            assert session.navigate(2)
            session.answer("q3", "42")
            assert session.navigate(0)
            return session

        session = run(scenario())
        assert session.answer_for("q1") == OptionIndex(2)
        assert session.current_question.id == "q1"
        assert session.unanswered_count() == 1
        assert session.progress_percent() == pytest.approx(200 / 3)

    def test_navigate_out_of_range(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            session.navigate(3)

        with pytest.raises(IndexError):
            run(scenario())

    def test_next_and_previous_stop_at_edges(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            assert not session.previous_question()
            assert session.next_question()
            assert session.next_question()
            assert not session.next_question()
            return session

        assert run(scenario()).current_index == 2

    def test_answer_overwrites(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q2", True)
            session.answer("q2", "false")
            return session

        session = run(scenario())
        assert session.answer_records()[1].value.value is False
        assert session.answer_records()[1].dirty

    def test_clear_answer(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q3", "42")
            session.clear_answer("q3")
            return session

        assert run(scenario()).answer_for("q3") is None

    def test_unknown_question_rejected(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q9", "x")

        with pytest.raises(ValueError):
            run(scenario())

    def test_time_accrues_to_visited_question(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            clock.advance(12)
            session.navigate(1)
            clock.advance(3)
            session.navigate(0)
            return session

        session = run(scenario())
        records = session.answer_records()
        assert records[0].time_spent_seconds == pytest.approx(12)
        assert records[1].time_spent_seconds == pytest.approx(3)


class TestSubmit:
    """Manual submission"""

    def test_example_attempt(self, attempts, clock, ticker):
        """Three answers, 30/40/25 seconds, 95 seconds in total"""
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q1", "B")
            clock.advance(30)
            session.navigate(1)
            session.answer("q2", True)
            clock.advance(40)
            session.navigate(2)
            session.answer("q3", "42")
            clock.advance(25)
            result = await session.submit()
            return session, result

        session, result = run(scenario())
        assert len(attempts.submissions) == 1
        attempt_id, submission = attempts.submissions[0]
        assert attempt_id == "attempt-1"
        assert [answer.answer for answer in submission.answers] == ["B", "True", "42"]
        assert [answer.time_spent_seconds for answer in submission.answers] == [30, 40, 25]
        assert submission.total_time_seconds == 95
        assert session.current_state() is SessionState.COMPLETED
        assert session.result() is result
        assert session.attempt.status is AttemptStatus.SUBMITTED
        assert not ticker.is_active
        assert not any(record.dirty for record in session.answer_records())

    def test_incomplete_answers_rejected_locally(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q1", "B")
            session.answer("q2", False)
            with pytest.raises(IncompleteAnswers) as excinfo:
                await session.submit()
            return session, excinfo.value

        session, error = run(scenario())
        assert error.unanswered_count == 1
        assert error.question_ids == ("q3",)
        assert attempts.submissions == []
        assert session.current_state() is SessionState.IN_PROGRESS
        assert ticker.is_active

    def test_partial_submission_allowed_when_not_required(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q1", 1)
            return await session.submit()

        run(scenario())
        _, submission = attempts.submissions[0]
        assert [answer.answer for answer in submission.answers] == [1, "", ""]

    def test_second_submit_while_in_flight(self, attempts, clock, ticker):
        """Only one submission reaches the server"""
        async def scenario():
            attempts.submit_gate = asyncio.Event()
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            first = asyncio.create_task(session.submit())
            await asyncio.sleep(0)
            assert session.current_state() is SessionState.SUBMITTING
            assert session.is_pending
            with pytest.raises(SubmissionInProgress):
                await session.submit()
            assert not session.answer("q1", 0)
            assert not session.navigate(1)
            attempts.submit_gate.set()
            await first
            return session

        session = run(scenario())
        assert len(attempts.submissions) == 1
        assert session.answer_for("q1") is None
        assert session.current_index == 0

    def test_failure_rolls_back_to_in_progress(self, attempts, clock, ticker):
        """Answers and position survive a failed submission"""
        async def scenario():
            attempts.submit_errors.append(ServiceUnavailable("down"))
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q1", "B")
            session.answer("q2", True)
            session.navigate(2)
            session.answer("q3", "42")
            with pytest.raises(SubmitFailed):
                await session.submit()
            assert session.current_state() is SessionState.IN_PROGRESS
            assert session.current_index == 2
            assert session.answer_for("q3") is not None
            assert ticker.is_active
            assert session.answer("q3", "41")
            return await session.submit()

        run(scenario())
        assert len(attempts.submissions) == 2
        assert attempts.submissions[1][1].answers[2].answer == "41"

    def test_submit_after_completion_returns_result(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            first = await session.submit()
            second = await session.submit()
            return first, second

        first, second = run(scenario())
        assert first is second
        assert len(attempts.submissions) == 1

    def test_server_already_finalized(self, attempts, clock, ticker):
        async def scenario():
            attempts.submit_errors.append(AttemptExpiredAlready("done"))
            attempts.stored_result = make_result(score=33, correct_answers=1)
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            return session, await session.submit()

        session, result = run(scenario())
        assert result.score == 33
        assert session.current_state() is SessionState.COMPLETED

    def test_result_unavailable_before_completion(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(make_quiz(), attempts, clock, ticker)
            await session.start()
            return session

        session = run(scenario())
        with pytest.raises(ResultUnavailable):
            session.result()
        with pytest.raises(RuntimeError):
            session.result()


class TestTimeExpiry:
    """Count-down quizzes submit themselves"""

    def test_expiry_submits_partial_answers(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q1", 2)
            clock.advance(60)
            ticker.fire()
            assert session.current_state() is SessionState.SUBMITTING
            assert session.is_time_expired
            assert not ticker.is_active
            assert not session.answer("q2", True)
            await session.wait_for_submission()
            return session

        session = run(scenario())
        assert session.current_state() is SessionState.COMPLETED
        assert session.attempt.status is AttemptStatus.EXPIRED
        assert len(attempts.submissions) == 1
        _, submission = attempts.submissions[0]
        assert [answer.answer for answer in submission.answers] == [2, "", ""]
        assert submission.total_time_seconds == 60

    def test_manual_submit_during_expiry_submission(self, attempts, clock, ticker):
        """The learner's submit joins the expiry submission"""
        async def scenario():
            attempts.submit_gate = asyncio.Event()
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            clock.advance(61)
            ticker.fire()
            manual = asyncio.create_task(session.submit())
            await asyncio.sleep(0)
            attempts.submit_gate.set()
            return await manual, session

        result, session = run(scenario())
        assert result is session.result()
        assert len(attempts.submissions) == 1

    def test_expiry_overrides_completeness(self, attempts, clock, ticker):
        """Even quizzes that require every answer submit on expiry"""
        async def scenario():
            quiz = make_quiz(time_limit_seconds=30, require_all_answers=True)
            session = make_session(quiz, attempts, clock, ticker)
            await session.start()
            clock.advance(30)
            ticker.fire()
            await session.wait_for_submission()
            return session

        assert run(scenario()).current_state() is SessionState.COMPLETED

    def test_expiry_waits_when_partial_disallowed(self, attempts, clock, ticker):
        async def scenario():
            quiz = make_quiz(time_limit_seconds=30, require_all_answers=True, allow_partial_on_expiry=False)
            session = make_session(quiz, attempts, clock, ticker)
            await session.start()
            session.answer("q1", "A")
            session.answer("q2", False)
            clock.advance(30)
            ticker.fire()
            assert session.current_state() is SessionState.IN_PROGRESS
            assert session.is_time_expired
            assert attempts.submissions == []
            assert session.answer("q3", "42")
            await session.submit()
            return session

        session = run(scenario())
        assert session.attempt.status is AttemptStatus.EXPIRED

    def test_expiry_failure_keeps_answers_locked(self, attempts, clock, ticker):
        """A failed expiry submission is retried as-is, without the tick"""
        async def scenario():
            attempts.submit_errors.append(ServiceUnavailable("down"))
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            clock.advance(60)
            ticker.fire()
            with pytest.raises(SubmitFailed):
                await session.wait_for_submission()
            assert session.current_state() is SessionState.IN_PROGRESS
            assert not ticker.is_active
            assert not session.answer("q1", 0)
            return session, await session.submit()

        session, result = run(scenario())
        assert session.current_state() is SessionState.COMPLETED
        assert len(attempts.submissions) == 2

    def test_display_counts_down(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            clock.advance(15.5)
            return session

        assert run(scenario()).time_remaining_or_elapsed() == 45

    def test_count_up_quiz_never_expires(self, attempts, clock, ticker):
        """Without a time limit the clock only counts up"""
        quiz = make_quiz()
        assert not quiz.is_time_boxed
        assert timed_quiz().is_time_boxed

        async def scenario():
            session = make_session(quiz, attempts, clock, ticker)
            await session.start()
            clock.advance(7200)
            ticker.fire()
            return session

        session = run(scenario())
        assert session.current_state() is SessionState.IN_PROGRESS
        assert not session.is_time_expired
        assert session.time_remaining_or_elapsed() == 7200
        assert attempts.submissions == []


class TestClose:
    """Teardown never submits"""

    def test_close_in_progress(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            session.answer("q1", 0)
            session.close()
            assert not session.answer("q1", 1)
            with pytest.raises(SessionClosed):
                await session.submit()
            return session

        session = run(scenario())
        assert session.current_state() is SessionState.CLOSED
        assert not ticker.is_active
        assert attempts.submissions == []

    def test_close_while_starting(self, attempts, clock, ticker):
        """No timer starts for a session closed mid-start"""
        async def scenario():
            attempts.start_gate = asyncio.Event()
            session = make_session(timed_quiz(), attempts, clock, ticker)
            pending = asyncio.create_task(session.start())
            await asyncio.sleep(0)
            session.close()
            attempts.start_gate.set()
            await pending
            return session

        session = run(scenario())
        assert session.current_state() is SessionState.CLOSED
        assert ticker.start_calls == 0

    def test_closed_session_cannot_start(self, attempts, clock, ticker):
        session = make_session(make_quiz(), attempts, clock, ticker)
        session.close()
        with pytest.raises(SessionClosed):
            run(session.start())

    def test_context_manager_closes(self, attempts, clock, ticker):
        async def scenario():
            async with make_session(timed_quiz(), attempts, clock, ticker) as session:
                await session.start()
            return session

        session = run(scenario())
        assert session.current_state() is SessionState.CLOSED
        assert not ticker.is_active

    def test_close_after_completion_keeps_result(self, attempts, clock, ticker):
        async def scenario():
            session = make_session(timed_quiz(), attempts, clock, ticker)
            await session.start()
            await session.submit()
            session.close()
            return session

        session = run(scenario())
        assert session.current_state() is SessionState.COMPLETED
        assert session.result().score == 67
