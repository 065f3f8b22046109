"""
Teacher grading of submitted attempts.

Every write that changes scores goes through ``_apply_grades``: Grade rows
are upserted (one per attempt and question), the Result is recomputed from
all Grade rows, and the attempt advances to ``graded`` in the same
transaction once every question has a grade.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from assessments import notifications
from assessments.exceptions import ExamConfigurationError, GradingConflict, InvalidStatusTransition
from assessments.models import ExamAttempt, Grade, Result
from assessments.services.autograde import (
    answer_for,
    classify,
    compute_percentage,
    CORRECT,
    INCORRECT,
    is_answered,
    MCQ,
    score_mcq,
    score_question,
)
from assessments.services.stats import refresh_student_stats
from assessments.services.transitions import advance_attempt
from cores.models import AuditLog

logger = logging.getLogger("grading")

ZERO = Decimal("0")


def parse_point_input(raw, max_points):
    """
    Reads a score typed into a grading form.

    Returns ``(field_value, numeric)``. Empty or half-typed input keeps the
    field as typed and counts as 0; anything non-finite counts as 0; numbers
    are clamped to ``[0, max_points]``.
    """
    text = "" if raw is None else str(raw).strip()
    if not text:
        return "", ZERO
    try:
        value = Decimal(text)
    except InvalidOperation:
        return text, ZERO
    if not value.is_finite():
        return text, ZERO
    clamped = min(max(value, ZERO), Decimal(max_points))
    if clamped != value:
        return str(clamped), clamped
    return text, value


def running_total(inputs, max_points_by_question):
    """Sum of a grading form's current inputs, keyed by question id."""
    total = ZERO
    for question_id, raw in (inputs or {}).items():
        max_points = max_points_by_question.get(str(question_id))
        if max_points is None:
            continue
        total += parse_point_input(raw, max_points)[1]
    return total


def _gradeable_questions(attempt):
    return {str(q["id"]): q for q in attempt.snapshot_questions()}


def validate_scores(attempt, scores):
    """
    Maps question id to a Decimal score within ``[0, points]``. Raises
    ValidationError naming every offending question, before anything is written.
    """
    if not isinstance(scores, dict) or not scores:
        raise ValidationError({"scores": "Provide at least one question score."})

    questions = _gradeable_questions(attempt)
    errors = {}
    cleaned = {}
    for key, raw in scores.items():
        key = str(key)
        question = questions.get(key)
        if question is None:
            errors[key] = "Not a question of this attempt."
            continue
        try:
            value = Decimal(str(raw))
        except InvalidOperation:
            errors[key] = "Score must be a number."
            continue
        if not value.is_finite() or value < 0 or value > question["points"]:
            errors[key] = f"Score must be between 0 and {question['points']}."
            continue
        cleaned[question["id"]] = value

    if errors:
        raise ValidationError({"scores": errors})
    return cleaned


def _lock(attempt):
    return ExamAttempt.objects.select_for_update().select_related("exam", "student").get(pk=attempt.pk)


def _ensure_gradeable(attempt):
    if attempt.status == ExamAttempt.Status.CLOSED:
        raise InvalidStatusTransition("This attempt is closed and can no longer be graded.")
    if attempt.status not in ExamAttempt.GRADEABLE_STATUSES:
        raise InvalidStatusTransition("This attempt has not been submitted yet.")
    if attempt.exam.total_marks <= 0:
        raise ExamConfigurationError("Exam total marks must be greater than zero.")
    if sum(int(q["points"]) for q in attempt.snapshot_questions()) != attempt.exam.total_marks:
        raise ExamConfigurationError("Exam total marks do not match the points of the submitted questions.")


def _correctness(outcome):
    """is_correct for a stored grade: unknown for partial credit and unanswered questions."""
    if outcome == CORRECT:
        return True
    if outcome == INCORRECT:
        return False
    return None


def _apply_grades(attempt, scores, grader=None, feedback=None, now=None):
    """Write path shared by manual grading, MCQ auto-grading and immediate grading on submit."""
    now = now or timezone.now()
    exam = attempt.exam
    questions = _gradeable_questions(attempt)

    for question_id, score in scores.items():
        question = questions[str(question_id)]
        answered = is_answered(answer_for(attempt.answers, question_id))
        outcome = classify(score, question["points"], answered)
        Grade.objects.update_or_create(
            attempt=attempt,
            question_id=question_id,
            defaults={
                "score": score,
                "max_score": question["points"],
                "is_correct": _correctness(outcome),
                "outcome": outcome,
                "grader": grader,
                "graded_at": now,
            },
        )

    grades = {str(g.question_id): g.score for g in attempt.grades.all()}
    graded_total = attempt.grades.aggregate(total=Sum("score"))["total"] or ZERO
    all_graded = set(questions) <= set(grades)

    result_defaults = {
        "exam": exam,
        "student": attempt.student,
        "score": graded_total,
        "total_marks": exam.total_marks,
        "percentage": compute_percentage(graded_total, exam.total_marks),
        "passed": graded_total >= exam.passing_marks,
        "graded_by": grader,
        "graded_at": now,
    }
    if feedback is not None:
        result_defaults["feedback"] = feedback
    Result.objects.update_or_create(attempt=attempt, defaults=result_defaults)

    # Ungraded questions still count with their provisional auto-score
    effective = graded_total
    for key, question in questions.items():
        if key not in grades:
            effective += score_question(question, answer_for(attempt.answers, key)).score
    attempt.total_score = effective

    target = ExamAttempt.Status.GRADED if all_graded else ExamAttempt.Status.IN_REVIEW
    advance_attempt(attempt, target)
    if all_graded:
        attempt.graded_at = now
    attempt.version += 1
    attempt.save()

    AuditLog.record(
        actor=grader,
        action=AuditLog.Action.GRADE,
        target=attempt,
        details=f"Graded {len(scores)} question(s); total {graded_total}/{exam.total_marks}",
    )
    logger.info(
        "Attempt %s graded by %s: %s question(s), total %s, status %s",
        attempt.pk,
        grader or "auto",
        len(scores),
        graded_total,
        attempt.status,
    )

    refresh_student_stats(attempt.student)
    event = notifications.GRADED if all_graded else notifications.IN_REVIEW
    notifications.publish_attempt_change(attempt, event)
    return attempt


def submit_grades(ctx, attempt, scores, feedback=None, expected_version=None, now=None):
    """
    Teacher upserts per-question scores for an attempt of an exam they own.

    Calling it again replaces earlier values. When ``expected_version`` is
    given and the attempt moved on since the grader loaded it, GradingConflict
    is raised and nothing is written.
    """
    ctx.require_owner_of(attempt.exam)
    with transaction.atomic():
        locked = _lock(attempt)
        _ensure_gradeable(locked)
        if expected_version is not None and int(expected_version) != locked.version:
            logger.warning(
                "Grading conflict on attempt %s: expected version %s, found %s",
                locked.pk,
                expected_version,
                locked.version,
            )
            raise GradingConflict()
        cleaned = validate_scores(locked, scores)
        return _apply_grades(locked, cleaned, grader=ctx.user, feedback=feedback, now=now)


def auto_grade_mcq(ctx, attempt, now=None):
    """Writes Grade rows for every multiple-choice question of the attempt."""
    ctx.require_owner_of(attempt.exam)
    with transaction.atomic():
        locked = _lock(attempt)
        _ensure_gradeable(locked)
        scores = {
            q["id"]: Decimal(score_mcq(q, answer_for(locked.answers, q["id"])))
            for q in locked.snapshot_questions()
            if q["question_type"] == MCQ
        }
        if not scores:
            raise ValidationError({"scores": "This attempt has no multiple-choice questions."})
        return _apply_grades(locked, scores, grader=ctx.user, now=now)


def close_attempt(ctx, attempt):
    """graded -> closed. A closed attempt is read-only."""
    ctx.require_owner_of(attempt.exam)
    with transaction.atomic():
        locked = _lock(attempt)
        if locked.status != ExamAttempt.Status.GRADED:
            raise InvalidStatusTransition("Only graded attempts can be closed.")
        advance_attempt(locked, ExamAttempt.Status.CLOSED)
        locked.version += 1
        locked.save()
        AuditLog.record(actor=ctx.user, action=AuditLog.Action.CLOSE, target=locked)
        logger.info("Attempt %s closed by %s", locked.pk, ctx.user)
        refresh_student_stats(locked.student)
        notifications.publish_attempt_change(locked, notifications.CLOSED)
    return locked
