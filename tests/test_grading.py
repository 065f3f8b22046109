from decimal import Decimal

import pytest
from django.db.models import RestrictedError
from rest_framework.exceptions import PermissionDenied, ValidationError

from assessments.exceptions import ExamConfigurationError, GradingConflict, InvalidStatusTransition
from assessments.models import ExamAttempt, Grade, Result, StudentStats
from assessments.services.attempts import start_attempt, submit_attempt
from assessments.services.grading import (
    auto_grade_mcq,
    close_attempt,
    parse_point_input,
    running_total,
    submit_grades,
)
from exams.models import Exam, ExamQuestion, Question

LONG_ANSWER = "Photosynthesis turns light, water and carbon dioxide into glucose and oxygen."


class TestParsePointInput:
    def test_empty_input_stays_empty(self):
        assert parse_point_input("", 10) == ("", Decimal("0"))
        assert parse_point_input(None, 10) == ("", Decimal("0"))

    def test_half_typed_input_is_kept(self):
        assert parse_point_input("-", 10) == ("-", Decimal("0"))

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", "-inf"])
    def test_non_finite_counts_as_zero(self, raw):
        assert parse_point_input(raw, 10)[1] == 0

    def test_clamps_to_range(self):
        assert parse_point_input("15", 10) == ("10", Decimal("10"))
        assert parse_point_input("-3", 10) == ("0", Decimal("0"))

    def test_keeps_valid_values(self):
        assert parse_point_input("7.5", 10) == ("7.5", Decimal("7.5"))


class TestRunningTotal:
    def test_sums_current_inputs(self):
        inputs = {"1": "4", "2": "", "3": "99", "4": "abc"}
        assert running_total(inputs, {"1": 5, "2": 5, "3": 10, "4": 5}) == Decimal("14")

    def test_ignores_unknown_questions(self):
        assert running_total({"9": "3"}, {"1": 5}) == 0


@pytest.fixture
def submitted(ctx, student, descriptive_exam):
    q1, q2 = descriptive_exam.ordered_questions()
    attempt, _ = start_attempt(ctx(student), descriptive_exam)
    attempt, _ = submit_attempt(ctx(student), attempt, {str(q1.id): LONG_ANSWER, str(q2.id): "Evaporation."})
    return attempt


@pytest.mark.django_db
class TestSubmitGrades:
    def test_partial_grading_moves_to_review(self, ctx, teacher, submitted):
        q1, _ = submitted.exam.ordered_questions()
        attempt = submit_grades(ctx(teacher), submitted, {str(q1.id): 8})

        assert attempt.status == ExamAttempt.Status.IN_REVIEW
        result = Result.objects.get(attempt=attempt)
        assert result.score == Decimal("8")
        assert result.percentage == 40

    def test_full_grading_completes_attempt(self, ctx, teacher, submitted):
        q1, q2 = submitted.exam.ordered_questions()
        attempt = submit_grades(ctx(teacher), submitted, {q1.id: 8, q2.id: "3.5"}, feedback="Good effort")

        assert attempt.status == ExamAttempt.Status.GRADED
        assert attempt.graded_at is not None
        result = Result.objects.get(attempt=attempt)
        assert result.score == sum(g.score for g in attempt.grades.all())
        assert result.score == Decimal("11.5")
        assert result.percentage == 58
        assert result.passed
        assert result.feedback == "Good effort"
        assert attempt.total_score == result.score

    def test_regrading_replaces_values(self, ctx, teacher, submitted):
        q1, q2 = submitted.exam.ordered_questions()
        submit_grades(ctx(teacher), submitted, {q1.id: 8, q2.id: 4})
        attempt = submit_grades(ctx(teacher), submitted, {q1.id: 2, q2.id: 1})

        assert Grade.objects.filter(attempt=attempt).count() == 2
        assert Result.objects.filter(attempt=attempt).count() == 1
        assert Result.objects.get(attempt=attempt).score == Decimal("3")
        assert attempt.status == ExamAttempt.Status.GRADED
        assert not Result.objects.get(attempt=attempt).passed

    def test_out_of_range_writes_nothing(self, ctx, teacher, submitted):
        q1, q2 = submitted.exam.ordered_questions()
        with pytest.raises(ValidationError) as exc:
            submit_grades(ctx(teacher), submitted, {q1.id: 5, q2.id: 11})
        assert str(q2.id) in exc.value.detail["scores"]
        assert not Grade.objects.exists()
        assert not Result.objects.exists()

    @pytest.mark.parametrize("value", [-1, "abc", "nan"])
    def test_invalid_scores(self, ctx, teacher, submitted, value):
        q1, _ = submitted.exam.ordered_questions()
        with pytest.raises(ValidationError):
            submit_grades(ctx(teacher), submitted, {q1.id: value})

    def test_unknown_question(self, ctx, teacher, submitted):
        with pytest.raises(ValidationError):
            submit_grades(ctx(teacher), submitted, {"987654": 1})

    def test_stale_version_is_a_conflict(self, ctx, teacher, submitted):
        q1, q2 = submitted.exam.ordered_questions()
        loaded_version = submitted.version
        submit_grades(ctx(teacher), submitted, {q1.id: 5}, expected_version=loaded_version)

        with pytest.raises(GradingConflict):
            submit_grades(ctx(teacher), submitted, {q2.id: 5}, expected_version=loaded_version)
        assert Grade.objects.filter(attempt=submitted).count() == 1

    def test_other_teacher_cannot_grade(self, ctx, other_teacher, submitted):
        q1, _ = submitted.exam.ordered_questions()
        with pytest.raises(PermissionDenied):
            submit_grades(ctx(other_teacher), submitted, {q1.id: 5})

    def test_admin_can_grade_any_exam(self, ctx, admin_user, submitted):
        q1, _ = submitted.exam.ordered_questions()
        attempt = submit_grades(ctx(admin_user), submitted, {q1.id: 5})
        assert attempt.grades.get().grader == admin_user

    def test_draft_cannot_be_graded(self, ctx, student, teacher, mcq_exam):
        q1, _ = mcq_exam.ordered_questions()
        attempt, _ = start_attempt(ctx(student), mcq_exam)
        with pytest.raises(InvalidStatusTransition):
            submit_grades(ctx(teacher), attempt, {q1.id: 5})

    def test_zero_total_marks_blocks_grading(self, ctx, teacher, submitted):
        q1, _ = submitted.exam.ordered_questions()
        Exam.objects.filter(pk=submitted.exam_id).update(total_marks=0)
        with pytest.raises(ExamConfigurationError):
            submit_grades(ctx(teacher), submitted, {q1.id: 5})

    def test_total_marks_must_match_submitted_points(self, ctx, teacher, submitted):
        q1, _ = submitted.exam.ordered_questions()
        Exam.objects.filter(pk=submitted.exam_id).update(total_marks=30)
        with pytest.raises(ExamConfigurationError):
            submit_grades(ctx(teacher), submitted, {q1.id: 5})
        assert not Grade.objects.exists()

    def test_submitted_questions_stay_in_the_bank(self, ctx, teacher, submitted):
        q1, q2 = submitted.exam.ordered_questions()
        with pytest.raises(RestrictedError):
            Question.objects.filter(pk=q1.pk).delete()

        attempt = submit_grades(ctx(teacher), submitted, {q1.id: 8, q2.id: 4})
        assert attempt.status == ExamAttempt.Status.GRADED

        ExamQuestion.objects.filter(exam=submitted.exam).delete()
        with pytest.raises(RestrictedError):
            Question.objects.filter(pk=q1.pk).delete()
        assert attempt.grades.count() == 2
        assert Result.objects.get(attempt=attempt).score == Decimal("12")

    def test_unanswered_question_is_not_marked_incorrect(self, ctx, student, teacher, descriptive_exam):
        q1, q2 = descriptive_exam.ordered_questions()
        attempt, _ = start_attempt(ctx(student), descriptive_exam)
        attempt, _ = submit_attempt(ctx(student), attempt, {str(q1.id): "Wrong."})

        attempt = submit_grades(ctx(teacher), attempt, {q1.id: 0, q2.id: 0})

        assert attempt.grades.get(question=q1).outcome == Grade.Outcome.INCORRECT
        assert attempt.grades.get(question=q1).is_correct is False
        assert attempt.grades.get(question=q2).outcome == Grade.Outcome.UNANSWERED
        assert attempt.grades.get(question=q2).is_correct is None

    def test_refreshes_student_stats(self, ctx, teacher, student, submitted):
        q1, q2 = submitted.exam.ordered_questions()
        submit_grades(ctx(teacher), submitted, {q1.id: 10, q2.id: 5})
        stats = StudentStats.objects.get(student=student)
        assert stats.total_attempts == 1
        assert stats.graded_attempts == 1
        assert stats.average_percentage == Decimal("75.00")

    def test_grades_from_snapshot_after_question_edit(self, ctx, teacher, submitted):
        q1, q2 = submitted.exam.ordered_questions()
        q1.points = 2
        q1.save()

        attempt = submit_grades(ctx(teacher), submitted, {q1.id: 9, q2.id: 0})
        assert attempt.grades.get(question=q1).max_score == Decimal("10")


@pytest.mark.django_db
class TestAutoGradeMcq:
    def test_grades_only_mcq_questions(self, ctx, student, teacher, mixed_exam):
        mcq, essay = mixed_exam.ordered_questions()
        attempt, _ = start_attempt(ctx(student), mixed_exam)
        attempt, _ = submit_attempt(ctx(student), attempt, {str(mcq.id): "Paris", str(essay.id): LONG_ANSWER})

        attempt = auto_grade_mcq(ctx(teacher), attempt)

        assert attempt.status == ExamAttempt.Status.IN_REVIEW
        grade = attempt.grades.get()
        assert grade.question_id == mcq.id
        assert grade.score == Decimal("10")
        assert grade.is_correct is True
        # The essay keeps its provisional credit until graded
        assert attempt.total_score == Decimal("17")

    def test_exam_without_mcq(self, ctx, teacher, submitted):
        with pytest.raises(ValidationError):
            auto_grade_mcq(ctx(teacher), submitted)


@pytest.mark.django_db
class TestCloseAttempt:
    def test_graded_attempt_closes(self, ctx, teacher, submitted):
        q1, q2 = submitted.exam.ordered_questions()
        submit_grades(ctx(teacher), submitted, {q1.id: 5, q2.id: 5})

        attempt = close_attempt(ctx(teacher), submitted)
        assert attempt.status == ExamAttempt.Status.CLOSED

        with pytest.raises(InvalidStatusTransition):
            submit_grades(ctx(teacher), attempt, {q1.id: 1})

    def test_only_graded_attempts_close(self, ctx, teacher, submitted):
        with pytest.raises(InvalidStatusTransition):
            close_attempt(ctx(teacher), submitted)
