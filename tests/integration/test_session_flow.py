"""
Integration tests for SessionOrchestrator.

Full tutoring sessions against the in-memory store and a scripted generator:
goal progression, retries, feedback options, resumption, fallbacks and
per-session serialization.
"""

import asyncio

import pytest
from conftest import FakeGenerator, goals_payload, grade_by_answer, questions_payload

from cloop_tutor.tutoring.engine import SessionOrchestrator
from cloop_tutor.tutoring.errors import PersistenceError, SessionNotFound, TopicNotFound
from cloop_tutor.tutoring.models import ProgressStatus


def scripted_generator(**overrides):
    scripts = {
        "goals": goals_payload("Light reactions", "Calvin cycle"),
        "questions": [questions_payload(2, "First"), questions_payload(2, "Second")],
        "evaluate": grade_by_answer({"A1", "A2"}),
        "recommendations": {"recommendations": ["Keep practicing"]},
        "explanation": {"explanation": "Light energy is captured by chlorophyll."},
    }
    scripts.update(overrides)
    return FakeGenerator(**scripts)


@pytest.fixture
def generator():
    return scripted_generator()


@pytest.fixture
def orchestrator(persistence, generator, clock):
    return SessionOrchestrator(persistence, generator, questions_per_goal=2, clock=clock)


class TestStartSession:
    """Tests for start_session."""

    @pytest.mark.asyncio
    async def test_first_question_and_session_info(self, orchestrator):
        start = await orchestrator.start_session("u1", "t1")

        assert len(start["messages"]) == 2
        assert "Photosynthesis" in start["messages"][0]["message"]
        assert "Light reactions" in start["messages"][1]["message"]
        assert all(m["message_type"] == "text" for m in start["messages"])

        assert start["currentQuestion"]["question"] == "First1?"
        assert start["currentQuestion"]["goal"] == "Light reactions"
        assert start["sessionInfo"] == {
            "totalGoals": 2,
            "currentGoalIndex": 1,
            "questionsInGoal": 2,
            "estimatedDuration": "30 minutes",
        }
        assert orchestrator.registry.get("u1", "t1") is not None

    @pytest.mark.asyncio
    async def test_unknown_topic_raises(self, orchestrator):
        with pytest.raises(TopicNotFound):
            await orchestrator.start_session("u1", "missing")

    @pytest.mark.asyncio
    async def test_restart_replaces_session(self, orchestrator):
        await orchestrator.start_session("u1", "t1")
        await orchestrator.process_answer("u1", "t1", "A1")
        restart = await orchestrator.start_session("u1", "t1")

        assert restart["currentQuestion"]["question"] == "First1?"
        assert orchestrator.registry.get("u1", "t1").current_question_index == 0
        assert len(orchestrator.registry) == 1


class TestFullSession:
    """Two goals with two questions each, all answered correctly."""

    @pytest.mark.asyncio
    async def test_walkthrough(self, orchestrator, persistence):
        await orchestrator.start_session("u1", "t1")

        turn = await orchestrator.process_answer("u1", "t1", "A1")
        assert turn["evaluation"]["is_correct"] is True
        assert turn["evaluation"]["bubble_color"] == "green"
        assert turn["sessionInfo"]["currentQuestionIndex"] == 1
        assert turn["nextQuestion"]["question"] == "First2?"
        assert "goalCompleted" not in turn

        turn = await orchestrator.process_answer("u1", "t1", "A2")
        assert turn["goalCompleted"]["goal"] == "Light reactions"
        assert turn["goalCompleted"]["performance"]["accuracyPercent"] == 100
        assert turn["goalCompleted"]["performance"]["isMastered"] is True
        assert turn["nextQuestion"] == {
            "id": turn["nextQuestion"]["id"],
            "question": "Second1?",
            "goal": "Calvin cycle",
        }

        turn = await orchestrator.process_answer("u1", "t1", "A1")
        assert turn["sessionInfo"]["currentGoalIndex"] == 2
        assert turn["nextQuestion"]["question"] == "Second2?"

        turn = await orchestrator.process_answer("u1", "t1", "A2")
        summary = turn["sessionCompleted"]["summary"]
        assert "nextQuestion" not in turn
        assert summary["totalGoals"] == 2
        assert summary["completedGoals"] == 2
        assert summary["overallPerformance"] == {
            "totalQuestions": 4,
            "correctAnswers": 4,
            "accuracyPercent": 100,
        }
        assert summary["starRating"] == 3
        assert summary["learningGaps"] == []
        assert summary["recommendations"] == ["Keep practicing"]
        assert summary["status"] == "completed"

        with pytest.raises(SessionNotFound):
            await orchestrator.process_answer("u1", "t1", "A1")

        progress = await persistence.get_user_progress("u1", "t1")
        assert progress.status == ProgressStatus.COMPLETED
        assert len(progress.completed_goals) == 2

    @pytest.mark.asyncio
    async def test_questions_are_generated_once_per_goal(self, orchestrator, generator):
        await orchestrator.start_session("u1", "t1")
        for answer in ["A1", "A2", "A1", "A2"]:
            await orchestrator.process_answer("u1", "t1", answer)

        assert len(generator.calls_of("goals")) == 1
        assert len(generator.calls_of("questions")) == 2

    @pytest.mark.asyncio
    async def test_time_spent_tracks_clock(self, orchestrator, clock):
        await orchestrator.start_session("u1", "t1")
        clock.advance(minutes=7)
        turn = await orchestrator.process_answer("u1", "t1", "A1")
        assert turn["sessionInfo"]["timeSpent"] == 7


class TestIncorrectAnswers:
    """Retries and feedback options."""

    @pytest.mark.asyncio
    async def test_incorrect_answer_does_not_advance(self, orchestrator):
        await orchestrator.start_session("u1", "t1")

        turn = await orchestrator.process_answer("u1", "t1", "no idea")

        assert turn["evaluation"]["is_correct"] is False
        assert turn["evaluation"]["bubble_color"] == "red"
        assert turn["evaluation"]["options"] == ["Got it", "Explain"]
        assert "nextQuestion" not in turn
        assert "resources" not in turn

        session = orchestrator.registry.get("u1", "t1")
        assert session.current_question_index == 0
        assert len(session.answers) == 1

        turn = await orchestrator.process_answer("u1", "t1", "A1")
        assert turn["nextQuestion"]["question"] == "First2?"

    @pytest.mark.asyncio
    async def test_resources_attached_when_learner_is_confused(self, persistence, clock):
        generator = scripted_generator(evaluate=grade_by_answer({"A1", "A2"}, needs_resources=True))
        orchestrator = SessionOrchestrator(persistence, generator, questions_per_goal=2, clock=clock)
        await orchestrator.start_session("u1", "t1")

        turn = await orchestrator.process_answer("u1", "t1", "no idea")

        assert turn["resources"]["explanation"] == "Light energy is captured by chlorophyll."
        assert turn["resources"]["videos"]

    @pytest.mark.asyncio
    async def test_got_it_advances(self, orchestrator):
        await orchestrator.start_session("u1", "t1")
        await orchestrator.process_answer("u1", "t1", "no idea")

        turn = await orchestrator.handle_feedback_option("u1", "t1", "Got it")

        assert turn == {"nextQuestion": turn["nextQuestion"]}
        assert turn["nextQuestion"]["question"] == "First2?"

    @pytest.mark.asyncio
    async def test_explain_attaches_explanation_and_advances(self, orchestrator):
        await orchestrator.start_session("u1", "t1")
        await orchestrator.process_answer("u1", "t1", "no idea")

        turn = await orchestrator.handle_feedback_option("u1", "t1", "Explain")

        assert turn["explanation"]["text"] == "Light energy is captured by chlorophyll."
        assert set(turn["explanation"]["resources"]) == {"videos", "images", "articles"}
        assert turn["nextQuestion"]["question"] == "First2?"

    @pytest.mark.asyncio
    async def test_missed_answers_count_against_goal(self, orchestrator):
        await orchestrator.start_session("u1", "t1")
        await orchestrator.process_answer("u1", "t1", "no idea")
        await orchestrator.handle_feedback_option("u1", "t1", "Got it")

        turn = await orchestrator.process_answer("u1", "t1", "A2")

        performance = turn["goalCompleted"]["performance"]
        assert performance["totalQuestions"] == 2
        assert performance["correctAnswers"] == 1
        assert performance["accuracyPercent"] == 50
        assert performance["isMastered"] is False
        assert performance["mostCommonError"] == "Conceptual"

    @pytest.mark.asyncio
    async def test_feedback_without_session_raises(self, orchestrator):
        with pytest.raises(SessionNotFound):
            await orchestrator.handle_feedback_option("u1", "t1", "Got it")

    @pytest.mark.asyncio
    async def test_answer_past_end_of_batch_raises(self, orchestrator, generator):
        await orchestrator.start_session("u1", "t1")
        session = orchestrator.registry.get("u1", "t1")
        session.current_question_index = len(session.questions)

        with pytest.raises(SessionNotFound):
            await orchestrator.process_answer("u1", "t1", "A1")
        assert generator.calls_of("evaluate") == []


class TestResumption:
    """Sessions pick up from persisted progress."""

    @pytest.mark.asyncio
    async def test_restart_resumes_at_next_goal(self, orchestrator):
        await orchestrator.start_session("u1", "t1")
        await orchestrator.process_answer("u1", "t1", "A1")
        await orchestrator.process_answer("u1", "t1", "A2")

        restart = await orchestrator.start_session("u1", "t1")

        assert restart["currentQuestion"]["goal"] == "Calvin cycle"
        assert restart["sessionInfo"]["currentGoalIndex"] == 2

    @pytest.mark.asyncio
    async def test_restarting_completed_topic_finishes_after_last_goal(self, orchestrator, persistence):
        await orchestrator.start_session("u1", "t1")
        for answer in ["A1", "A2", "A1", "A2"]:
            await orchestrator.process_answer("u1", "t1", answer)

        restart = await orchestrator.start_session("u1", "t1")
        assert restart["currentQuestion"]["goal"] == "Calvin cycle"

        await orchestrator.process_answer("u1", "t1", "A1")
        turn = await orchestrator.process_answer("u1", "t1", "A2")

        assert "sessionCompleted" in turn
        progress = await persistence.get_user_progress("u1", "t1")
        assert progress.overall_performance.total_questions == 4


class TestFallbacks:
    """Sessions keep working when generation is unavailable."""

    @pytest.mark.asyncio
    async def test_session_completes_on_fallback_content(self, persistence, clock):
        orchestrator = SessionOrchestrator(persistence, FakeGenerator(), questions_per_goal=2, clock=clock)

        start = await orchestrator.start_session("u1", "t1")
        assert start["sessionInfo"]["totalGoals"] == 4
        assert start["sessionInfo"]["questionsInGoal"] == 3

        turns = 0
        completed_goals = []
        while True:
            turn = await orchestrator.process_answer("u1", "t1", "something")
            assert turn["evaluation"]["score_percent"] == 50
            assert "resources" in turn
            turn = await orchestrator.handle_feedback_option("u1", "t1", "Got it")
            turns += 1
            if "goalCompleted" in turn:
                completed_goals.append(turn["goalCompleted"]["goal"])
            if "sessionCompleted" in turn:
                break

        summary = turn["sessionCompleted"]["summary"]
        assert turns == 12
        assert len(completed_goals) == 3
        assert summary["starRating"] == 1
        assert summary["overallPerformance"]["accuracyPercent"] == 0
        assert len(summary["learningGaps"]) == 4
        assert len(summary["recommendations"]) == 3


class TestFailurePropagation:
    """Persistence failures reach the caller and leave the session intact."""

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_learner_on_question(self, orchestrator, persistence):
        await orchestrator.start_session("u1", "t1")
        await orchestrator.process_answer("u1", "t1", "A1")

        original_update = persistence.update_user_progress

        async def failing_update(progress):
            raise PersistenceError("database unavailable")

        persistence.update_user_progress = failing_update
        with pytest.raises(PersistenceError):
            await orchestrator.process_answer("u1", "t1", "A2")

        session = orchestrator.registry.get("u1", "t1")
        assert session.current_question_index == 1
        assert session.current_goal.title == "Light reactions"

        persistence.update_user_progress = original_update
        turn = await orchestrator.process_answer("u1", "t1", "A2")
        assert turn["goalCompleted"]["goal"] == "Light reactions"


class TestConcurrency:
    """Turns for one session are applied one at a time."""

    @pytest.mark.asyncio
    async def test_concurrent_answers_are_serialized(self, orchestrator):
        await orchestrator.start_session("u1", "t1")

        first, second = await asyncio.gather(
            orchestrator.process_answer("u1", "t1", "A1"),
            orchestrator.process_answer("u1", "t1", "A2"),
        )

        assert first["nextQuestion"]["question"] == "First2?"
        assert second["sessionInfo"]["currentQuestionIndex"] == 2
        assert second["goalCompleted"]["goal"] == "Light reactions"

    @pytest.mark.asyncio
    async def test_turn_queued_behind_completion_sees_missing_session(self, orchestrator):
        await orchestrator.start_session("u1", "t1")
        for answer in ["A1", "A2", "A1"]:
            await orchestrator.process_answer("u1", "t1", answer)

        results = await asyncio.gather(
            orchestrator.process_answer("u1", "t1", "A2"),
            orchestrator.process_answer("u1", "t1", "A1"),
            return_exceptions=True,
        )

        assert "sessionCompleted" in results[0]
        assert isinstance(results[1], SessionNotFound)


class TestCleanup:
    """Tests for cleanup_inactive_sessions."""

    @pytest.mark.asyncio
    async def test_idle_sessions_are_retired(self, orchestrator, persistence, clock):
        await orchestrator.start_session("u1", "t1")
        clock.advance(minutes=61)

        removed = await orchestrator.cleanup_inactive_sessions()

        assert removed == ["u1_t1"]
        assert persistence.inactive_sessions == [("u1", "t1")]
        with pytest.raises(SessionNotFound):
            await orchestrator.process_answer("u1", "t1", "A1")

    @pytest.mark.asyncio
    async def test_activity_keeps_session_alive(self, orchestrator, clock):
        await orchestrator.start_session("u1", "t1")
        clock.advance(minutes=50)
        await orchestrator.process_answer("u1", "t1", "A1")
        clock.advance(minutes=50)

        assert await orchestrator.cleanup_inactive_sessions() == []
