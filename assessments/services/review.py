"""
Read-side reconstruction of an attempt for its student and its teacher.
Nothing in this module writes.
"""
from decimal import Decimal

from rest_framework.exceptions import PermissionDenied

from assessments.models import ExamAttempt, Result
from assessments.services.autograde import (
    answer_for,
    classify,
    compute_percentage,
    CORRECT,
    INCORRECT,
    is_answered,
    PARTIAL,
    score_question,
    UNANSWERED,
)
from assessments.services.timer import format_clock

RELEASED_STATUSES = [ExamAttempt.Status.GRADED, ExamAttempt.Status.CLOSED]


def can_reveal_answers(attempt, viewer):
    """Correct answers go to the exam's teacher, or to the student once grading is released."""
    if attempt.exam.is_owned_by(viewer):
        return True
    return attempt.student_id == viewer.pk and attempt.status in RELEASED_STATUSES


def review_item(question, answer, grade=None, reveal=False):
    answered = is_answered(answer)
    if grade is not None:
        score = grade.score
        max_score = grade.max_score
        outcome = classify(score, max_score, answered)
        provisional = False
    else:
        scored = score_question(question, answer)
        score = Decimal(scored.score)
        max_score = Decimal(scored.max_score)
        outcome = scored.outcome
        provisional = scored.provisional

    item = {
        "question_id": question["id"],
        "question_type": question["question_type"],
        "question_text": question["question_text"],
        "options": question.get("options") or [],
        "student_answer": answer if answered else None,
        "score": score,
        "max_score": max_score,
        "outcome": outcome,
        "provisional": provisional,
    }
    if reveal:
        item["correct_answer"] = question.get("correct_answer") or None
    return item


def build_review(attempt, viewer):
    """
    Per-question breakdown and exam-level summary of a submitted attempt.

    A Grade row always wins over the provisional auto-score. Only the attempt's
    student and the exam's teacher (or an admin) may look.
    """
    is_student = attempt.student_id == viewer.pk
    if not (is_student or attempt.exam.is_owned_by(viewer)):
        raise PermissionDenied("You cannot view this attempt.")
    if attempt.is_draft:
        raise PermissionDenied("Review is available once the attempt is submitted.")

    exam = attempt.exam
    reveal = can_reveal_answers(attempt, viewer)
    grades = {g.question_id: g for g in attempt.grades.all()}

    items = [
        review_item(q, answer_for(attempt.answers, q["id"]), grades.get(q["id"]), reveal)
        for q in attempt.snapshot_questions()
    ]
    buckets = {CORRECT: 0, PARTIAL: 0, INCORRECT: 0, UNANSWERED: 0}
    for item in items:
        buckets[item["outcome"]] += 1

    result = Result.objects.filter(attempt=attempt).first()
    total_score = sum((item["score"] for item in items), Decimal("0"))
    graded = attempt.status in RELEASED_STATUSES

    summary = {
        "attempt_id": attempt.pk,
        "exam_id": exam.pk,
        "exam_title": exam.title,
        "status": attempt.status,
        "total_score": total_score,
        "total_marks": exam.total_marks,
        "percentage": result.percentage if graded and result else compute_percentage(total_score, exam.total_marks),
        "passed": result.passed if graded and result else None,
        "provisional": any(item["provisional"] for item in items),
        "total_questions": len(items),
        "correct": buckets[CORRECT],
        "partial": buckets[PARTIAL],
        "incorrect": buckets[INCORRECT],
        "unanswered": buckets[UNANSWERED],
        "time_taken": attempt.time_taken,
        "time_spent": format_clock(attempt.time_taken or 0),
        "submitted_at": attempt.submitted_at,
        "was_forced": attempt.was_forced,
        "feedback": result.feedback if result else None,
        "version": attempt.version,
    }
    return {"summary": summary, "questions": items}
