"""
Attempt lifecycle: start, autosave, submit, and forced submission when the
countdown runs out.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from assessments import notifications
from assessments.exceptions import AttemptAlreadySubmitted, ExamConfigurationError, ExamUnavailable
from assessments.models import ExamAttempt
from assessments.services import timer
from assessments.services.autograde import auto_grade, is_answered, MCQ
from assessments.services.grading import _apply_grades
from assessments.services.stats import refresh_student_stats
from assessments.services.transitions import advance_attempt
from cores.models import AuditLog

logger = logging.getLogger("grading")


def ensure_exam_configured(exam):
    if exam.total_marks <= 0:
        raise ExamConfigurationError("Exam total marks must be greater than zero.")
    if not exam.exam_questions.exists():
        raise ExamConfigurationError("This exam has no questions.")
    if exam.total_marks != exam.points_total():
        raise ExamConfigurationError("Exam total marks do not match the points of its questions.")


def start_attempt(ctx, exam, now=None):
    """
    Opens the student's attempt, or hands back the draft they already have.
    Returns ``(attempt, created)``.
    """
    ctx.require_student()
    if not exam.is_open(now):
        raise ExamUnavailable()
    ensure_exam_configured(exam)

    attempt, created = ExamAttempt.objects.get_or_create(exam=exam, student=ctx.user)
    if not attempt.is_draft:
        raise AttemptAlreadySubmitted()
    if created:
        logger.info("Attempt %s started: exam %s, student %s", attempt.pk, exam.pk, ctx.user_id)
    return attempt, created


def clean_answers(questions, answers):
    """
    Keys answers by question id string and strips surrounding whitespace.
    Blank answers are kept as "" so that a save can clear an earlier answer.
    """
    if answers is None:
        return {}
    if not isinstance(answers, dict):
        raise ValidationError({"answers": "Expected a mapping of question id to answer text."})

    known = {str(q["id"]) for q in questions}
    errors = {}
    cleaned = {}
    for key, value in answers.items():
        key = str(key)
        if key not in known:
            errors[key] = "Not a question of this exam."
        elif value is None:
            cleaned[key] = ""
        elif not isinstance(value, str):
            errors[key] = "Answer must be text."
        else:
            cleaned[key] = value.strip()
    if errors:
        raise ValidationError({"answers": errors})
    return cleaned


def merge_answers(current, updates):
    merged = dict(current or {})
    merged.update(updates)
    return {key: value for key, value in merged.items() if is_answered(value)}


def save_answers(ctx, attempt, answers, now=None):
    """Autosave for a draft. Only the attempt's own student writes its answers."""
    ctx.require_attempt_owner(attempt)
    now = now or timezone.now()
    with transaction.atomic():
        locked = ExamAttempt.objects.select_for_update().select_related("exam").get(pk=attempt.pk)
        if not locked.is_draft:
            raise AttemptAlreadySubmitted()
        if timer.is_expired(locked, now, settings.ATTEMPT_GRACE_SECONDS):
            raise ExamUnavailable("Time is up for this attempt. Submit to finish.")
        questions = [q.snapshot() for q in locked.exam.ordered_questions()]
        locked.answers = merge_answers(locked.answers, clean_answers(questions, answers))
        locked.save(update_fields=["answers", "updated_at"])
    return locked


def submit_attempt(ctx, attempt, answers=None, forced=False, now=None):
    """
    Finalizes the student's attempt. Returns ``(attempt, summary)``.

    A second submission of the same attempt raises AttemptAlreadySubmitted;
    the attempt row stays locked for the duration, so of two concurrent
    submissions exactly one wins.
    """
    ctx.require_attempt_owner(attempt)
    return _finalize(attempt.pk, answers=answers, forced=forced, now=now, actor=ctx.user)


def _finalize(attempt_id, answers=None, forced=False, now=None, actor=None):
    now = now or timezone.now()
    with transaction.atomic():
        attempt = ExamAttempt.objects.select_for_update().select_related("exam", "student").get(pk=attempt_id)
        if not attempt.is_draft:
            raise AttemptAlreadySubmitted()
        exam = attempt.exam
        ensure_exam_configured(exam)

        questions = [q.snapshot() for q in exam.ordered_questions()]
        frozen = merge_answers(attempt.answers, clean_answers(questions, answers))
        late = timer.is_expired(attempt, now, settings.ATTEMPT_GRACE_SECONDS)
        summary = auto_grade(questions, frozen, exam.total_marks)

        attempt.answers = frozen
        attempt.question_snapshot = questions
        attempt.submitted_at = now
        attempt.time_taken = timer.elapsed_seconds(attempt, now)
        attempt.was_forced = forced or late
        attempt.total_score = summary.total_score
        advance_attempt(attempt, ExamAttempt.Status.SUBMITTED)
        attempt.version += 1
        attempt.save()

        AuditLog.record(
            actor=actor,
            action=AuditLog.Action.SUBMIT,
            target=attempt,
            details=f"{len(frozen)}/{len(questions)} answered{' (forced)' if attempt.was_forced else ''}",
        )
        logger.info(
            "Attempt %s submitted%s: %s/%s answered, provisional score %s/%s",
            attempt.pk,
            " (forced)" if attempt.was_forced else "",
            len(frozen),
            len(questions),
            summary.total_score,
            exam.total_marks,
        )
        notifications.publish_attempt_change(attempt, notifications.SUBMITTED)

        if all(q["question_type"] == MCQ for q in questions):
            scores = {s.question_id: s.score for s in summary.questions}
            _apply_grades(attempt, scores, grader=None, now=now)
        else:
            refresh_student_stats(attempt.student)
    return attempt, summary


def close_expired_attempts(now=None):
    """
    Force-submits every draft whose countdown ran out, with whatever answers
    were saved. Returns the attempts that were submitted.
    """
    now = now or timezone.now()
    submitted = []
    drafts = ExamAttempt.objects.filter(status=ExamAttempt.Status.DRAFT).select_related("exam")
    for attempt in drafts:
        if not timer.is_expired(attempt, now, settings.ATTEMPT_GRACE_SECONDS):
            continue
        try:
            finalized, _ = _finalize(attempt.pk, forced=True, now=now)
        except AttemptAlreadySubmitted:
            # Submitted by the student in the meantime
            continue
        except ExamConfigurationError as exc:
            logger.warning("Cannot auto-submit attempt %s: %s", attempt.pk, exc.detail)
            continue
        submitted.append(finalized)
    return submitted
