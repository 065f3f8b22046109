import logging

import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from assessments import notifications
from assessments.services.attempts import start_attempt, submit_attempt
from assessments.services.grading import submit_grades

pytestmark = pytest.mark.django_db


@pytest.fixture
def sent(monkeypatch):
    calls = []
    monkeypatch.setattr(notifications, "broadcast", lambda groups, payload: calls.append((groups, payload)))
    return calls


class TestPublishAttemptChange:
    def test_nothing_is_sent_before_commit(self, ctx, student, mcq_exam, sent, django_capture_on_commit_callbacks):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            submit_attempt(ctx(student), attempt, {})
        assert sent == []
        assert len(callbacks) == 2

    def test_all_mcq_submission_reports_submitted_then_graded(
        self, ctx, student, teacher, mcq_exam, sent, django_capture_on_commit_callbacks
    ):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        with django_capture_on_commit_callbacks(execute=True):
            submit_attempt(ctx(student), attempt, {})

        events = [payload["event"] for _, payload in sent]
        assert events == [notifications.SUBMITTED, notifications.GRADED]
        groups, payload = sent[-1]
        assert groups == [f"attempt_{attempt.pk}", f"user_{student.pk}", f"user_{teacher.pk}"]
        assert payload["status"] == "graded"

    def test_partial_grading_reports_in_review(
        self, ctx, student, teacher, descriptive_exam, sent, django_capture_on_commit_callbacks
    ):
        q1, _ = descriptive_exam.ordered_questions()
        attempt, _ = start_attempt(ctx(student), descriptive_exam)
        attempt, _ = submit_attempt(ctx(student), attempt, {})
        with django_capture_on_commit_callbacks(execute=True):
            submit_grades(ctx(teacher), attempt, {q1.id: 3})

        assert [payload["event"] for _, payload in sent] == [notifications.IN_REVIEW]


class TestBroadcast:
    def test_delivers_to_group_members(self):
        layer = get_channel_layer()
        channel = async_to_sync(layer.new_channel)()
        async_to_sync(layer.group_add)("user_42", channel)

        notifications.broadcast(["user_42"], {"event": notifications.GRADED})

        message = async_to_sync(layer.receive)(channel)
        assert message == {"type": "attempt.change", "payload": {"event": notifications.GRADED}}

    def test_failures_are_logged_not_raised(self, monkeypatch, caplog):
        class BrokenLayer:
            async def group_send(self, group, message):
                raise ConnectionError("redis down")

        monkeypatch.setattr(notifications, "get_channel_layer", lambda: BrokenLayer())
        with caplog.at_level(logging.WARNING, logger="assessments.notifications"):
            notifications.broadcast(["user_1", "user_2"], {"event": notifications.CLOSED})

        assert len(caplog.records) == 2
