from decimal import Decimal

from django.db.models import Max

from assessments.models import ExamAttempt, StudentStats

COUNTED_STATUSES = [
    ExamAttempt.Status.SUBMITTED,
    ExamAttempt.Status.IN_REVIEW,
    ExamAttempt.Status.GRADED,
    ExamAttempt.Status.CLOSED,
]
GRADED_STATUSES = [ExamAttempt.Status.GRADED, ExamAttempt.Status.CLOSED]

TWO_PLACES = Decimal("0.01")


def refresh_student_stats(student):
    """Recompute the per-student aggregate row from the student's attempts."""
    attempts = ExamAttempt.objects.filter(student=student)
    counted = attempts.filter(status__in=COUNTED_STATUSES)
    graded = list(
        attempts.filter(status__in=GRADED_STATUSES).values_list("total_score", "exam__total_marks")
    )

    average_score = Decimal("0")
    average_percentage = Decimal("0")
    if graded:
        average_score = sum(Decimal(score) for score, _ in graded) / len(graded)
        percentages = [Decimal(score) / Decimal(marks) * 100 for score, marks in graded if marks]
        if percentages:
            average_percentage = sum(percentages) / len(percentages)

    stats, _ = StudentStats.objects.update_or_create(
        student=student,
        defaults={
            "total_attempts": counted.count(),
            "graded_attempts": len(graded),
            "average_score": average_score.quantize(TWO_PLACES),
            "average_percentage": average_percentage.quantize(TWO_PLACES),
            "last_attempt_at": counted.aggregate(last=Max("submitted_at"))["last"],
        },
    )
    return stats
