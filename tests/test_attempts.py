from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.management import call_command
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from assessments.exceptions import AttemptAlreadySubmitted, ExamConfigurationError, ExamUnavailable
from assessments.models import ExamAttempt, Result
from assessments.services.attempts import (
    close_expired_attempts,
    save_answers,
    start_attempt,
    submit_attempt,
)
from cores.models import AuditLog
from exams.models import Exam

pytestmark = pytest.mark.django_db


def rewind(attempt, **delta):
    """Pretend the attempt was started earlier than it was."""
    ExamAttempt.objects.filter(pk=attempt.pk).update(started_at=timezone.now() - timedelta(**delta))
    attempt.refresh_from_db()
    return attempt


class TestStartAttempt:
    def test_creates_draft(self, ctx, student, mcq_exam):
        attempt, created = start_attempt(ctx(student), mcq_exam)
        assert created
        assert attempt.status == ExamAttempt.Status.DRAFT
        assert attempt.version == 1

    def test_resumes_existing_draft(self, ctx, student, mcq_exam):
        first, _ = start_attempt(ctx(student), mcq_exam)
        again, created = start_attempt(ctx(student), mcq_exam)
        assert not created
        assert again.pk == first.pk
        assert ExamAttempt.objects.count() == 1

    def test_teacher_cannot_take_exam(self, ctx, teacher, mcq_exam):
        with pytest.raises(PermissionDenied):
            start_attempt(ctx(teacher), mcq_exam)

    def test_unpublished_exam(self, ctx, student, mcq_exam):
        Exam.objects.filter(pk=mcq_exam.pk).update(status=Exam.Status.DRAFT)
        mcq_exam.refresh_from_db()
        with pytest.raises(ExamUnavailable):
            start_attempt(ctx(student), mcq_exam)

    def test_outside_window(self, ctx, student, mcq_exam):
        mcq_exam.start_time = timezone.now() + timedelta(days=1)
        mcq_exam.save()
        with pytest.raises(ExamUnavailable):
            start_attempt(ctx(student), mcq_exam)

    def test_zero_total_marks(self, ctx, student, teacher, make_question, make_exam):
        exam = make_exam(teacher, [make_question(teacher)], total_marks=0)
        with pytest.raises(ExamConfigurationError):
            start_attempt(ctx(student), exam)
        assert not ExamAttempt.objects.exists()

    def test_total_marks_must_match_question_points(self, ctx, student, teacher, make_question, make_exam):
        exam = make_exam(teacher, [make_question(teacher), make_question(teacher)], total_marks=10)
        with pytest.raises(ExamConfigurationError):
            start_attempt(ctx(student), exam)
        assert not Result.objects.exists()

    def test_exam_without_questions(self, ctx, student, teacher, make_exam):
        exam = make_exam(teacher, [], total_marks=10)
        with pytest.raises(ExamConfigurationError):
            start_attempt(ctx(student), exam)

    def test_cannot_restart_after_submission(self, ctx, student, mcq_exam):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        submit_attempt(ctx(student), attempt, {})
        with pytest.raises(AttemptAlreadySubmitted):
            start_attempt(ctx(student), mcq_exam)


class TestSaveAnswers:
    def test_merges_and_clears(self, ctx, student, mcq_exam):
        q1, q2 = mcq_exam.ordered_questions()
        attempt, _ = start_attempt(ctx(student), mcq_exam)

        save_answers(ctx(student), attempt, {str(q1.id): "Paris"})
        attempt = save_answers(ctx(student), attempt, {str(q2.id): "Mars"})
        assert attempt.answers == {str(q1.id): "Paris", str(q2.id): "Mars"}

        attempt = save_answers(ctx(student), attempt, {str(q2.id): "  "})
        assert attempt.answers == {str(q1.id): "Paris"}

    def test_rejects_unknown_question(self, ctx, student, mcq_exam):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        with pytest.raises(ValidationError):
            save_answers(ctx(student), attempt, {"999999": "Paris"})

    def test_only_owner_writes(self, ctx, student, other_student, mcq_exam):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        with pytest.raises(PermissionDenied):
            save_answers(ctx(other_student), attempt, {})

    def test_rejected_after_time_is_up(self, ctx, student, mcq_exam):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        rewind(attempt, hours=2)
        with pytest.raises(ExamUnavailable):
            save_answers(ctx(student), attempt, {})


class TestSubmitAttempt:
    def test_all_mcq_correct_is_graded_immediately(self, ctx, student, mcq_exam):
        q1, q2 = mcq_exam.ordered_questions()
        attempt, _ = start_attempt(ctx(student), mcq_exam)

        attempt, summary = submit_attempt(ctx(student), attempt, {str(q1.id): "paris ", str(q2.id): "Jupiter"})

        assert summary.total_score == 20
        assert summary.percentage == 100
        assert attempt.status == ExamAttempt.Status.GRADED
        assert attempt.total_score == Decimal("20")
        result = Result.objects.get(attempt=attempt)
        assert result.score == Decimal("20")
        assert result.percentage == 100
        assert result.passed
        assert attempt.grades.count() == 2

    def test_second_submission_is_rejected(self, ctx, student, mcq_exam):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        submit_attempt(ctx(student), attempt, {})
        with pytest.raises(AttemptAlreadySubmitted):
            submit_attempt(ctx(student), attempt, {})
        assert AuditLog.objects.filter(action=AuditLog.Action.SUBMIT).count() == 1

    def test_descriptive_stays_submitted_with_provisional_score(self, ctx, student, descriptive_exam):
        q1, q2 = descriptive_exam.ordered_questions()
        attempt, _ = start_attempt(ctx(student), descriptive_exam)

        attempt, summary = submit_attempt(ctx(student), attempt, {str(q1.id): "x" * 80})

        assert attempt.status == ExamAttempt.Status.SUBMITTED
        assert summary.total_score == 7
        assert summary.unanswered == 1
        assert not Result.objects.filter(attempt=attempt).exists()

    def test_freezes_snapshot_and_saved_answers(self, ctx, student, mcq_exam):
        q1, q2 = mcq_exam.ordered_questions()
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        save_answers(ctx(student), attempt, {str(q1.id): "Paris"})

        attempt, _ = submit_attempt(ctx(student), attempt, {str(q2.id): "Venus"})

        assert attempt.answers == {str(q1.id): "Paris", str(q2.id): "Venus"}
        assert [q["id"] for q in attempt.question_snapshot] == [q1.id, q2.id]
        assert attempt.question_snapshot[0]["correct_answer"] == "Paris"
        assert attempt.submitted_at is not None
        assert attempt.time_taken is not None

    def test_late_submission_is_accepted_as_forced(self, ctx, student, mcq_exam):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        rewind(attempt, hours=3)

        attempt, _ = submit_attempt(ctx(student), attempt, {})

        assert attempt.was_forced
        assert attempt.time_taken == mcq_exam.duration * 60

    def test_zero_total_marks_blocks_submission(self, ctx, student, mcq_exam):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        Exam.objects.filter(pk=mcq_exam.pk).update(total_marks=0)
        with pytest.raises(ExamConfigurationError):
            submit_attempt(ctx(student), attempt, {})
        attempt.refresh_from_db()
        assert attempt.is_draft


class TestCloseExpiredAttempts:
    def test_forced_submission_happens_once(self, ctx, student, teacher, make_question, make_exam):
        questions = [make_question(teacher) for _ in range(5)]
        exam = make_exam(teacher, questions)
        attempt, _ = start_attempt(ctx(student), exam)
        save_answers(ctx(student), attempt, {str(q.id): "Paris" for q in questions[:3]})
        rewind(attempt, minutes=45)

        submitted = close_expired_attempts()
        assert [a.pk for a in submitted] == [attempt.pk]
        assert close_expired_attempts() == []

        attempt.refresh_from_db()
        assert attempt.was_forced
        assert len(attempt.answers) == 3
        assert attempt.total_score == Decimal("30")
        outcomes = [g.outcome for g in attempt.grades.order_by("question__id")]
        assert outcomes == ["correct"] * 3 + ["unanswered"] * 2
        unanswered = attempt.grades.filter(question__in=questions[3:])
        assert all(grade.is_correct is None for grade in unanswered)

    def test_running_attempts_are_left_alone(self, ctx, student, mcq_exam):
        start_attempt(ctx(student), mcq_exam)
        assert close_expired_attempts() == []

    def test_management_command(self, ctx, student, mcq_exam, capsys):
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        rewind(attempt, hours=1)

        call_command("close_expired_attempts", "--dry-run")
        attempt.refresh_from_db()
        assert attempt.is_draft

        call_command("close_expired_attempts")
        attempt.refresh_from_db()
        assert attempt.status == ExamAttempt.Status.GRADED
        assert "Submitted 1 expired attempt(s)" in capsys.readouterr().out
