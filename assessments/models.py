# assessments/models.py
from django.conf import settings
from django.db import models

from exams.models import Exam, Question


class ExamAttempt(models.Model):
    """A student's single attempt at an exam. One per (exam, student)."""

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        SUBMITTED = "submitted", "Submitted"
        IN_REVIEW = "in_review", "In Review"
        GRADED = "graded", "Graded"
        CLOSED = "closed", "Closed"

    # Forward-only lifecycle; an attempt never moves back in this list
    STATUS_ORDER = [Status.DRAFT, Status.SUBMITTED, Status.IN_REVIEW, Status.GRADED, Status.CLOSED]
    GRADEABLE_STATUSES = [Status.SUBMITTED, Status.IN_REVIEW, Status.GRADED]

    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name="attempts")
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="attempts")

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    answers = models.JSONField(default=dict, blank=True)
    # Question content frozen at submission; grading and review read from here
    question_snapshot = models.JSONField(default=list, blank=True)

    started_at = models.DateTimeField(auto_now_add=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    time_taken = models.PositiveIntegerField(null=True, blank=True, help_text="Seconds")
    was_forced = models.BooleanField(default=False, help_text="Submitted by the countdown")

    total_score = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    version = models.PositiveIntegerField(default=1)
    graded_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-submitted_at", "-started_at"]
        constraints = [
            models.UniqueConstraint(fields=["exam", "student"], name="unique_attempt_per_student"),
        ]
        indexes = [
            models.Index(fields=["exam", "status"], name="attempt_exam_status_idx"),
        ]

    def __str__(self):
        return f"{self.student} - {self.exam.title} ({self.status})"

    @property
    def is_draft(self):
        return self.status == self.Status.DRAFT

    def snapshot_questions(self):
        """Gradeable question dicts: the frozen snapshot once submitted, live content before."""
        if self.question_snapshot:
            return list(self.question_snapshot)
        return [q.snapshot() for q in self.exam.ordered_questions()]


class Grade(models.Model):
    """Per-question score within an attempt, automatic or manual."""

    class Outcome(models.TextChoices):
        CORRECT = "correct", "Correct"
        PARTIAL = "partial", "Partial"
        INCORRECT = "incorrect", "Incorrect"
        UNANSWERED = "unanswered", "Unanswered"

    attempt = models.ForeignKey(ExamAttempt, on_delete=models.CASCADE, related_name="grades")
    # A graded question stays in the bank for as long as its grades exist
    question = models.ForeignKey(Question, on_delete=models.RESTRICT, related_name="grades")

    score = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    max_score = models.DecimalField(max_digits=10, decimal_places=2)
    is_correct = models.BooleanField(null=True)
    outcome = models.CharField(max_length=20, choices=Outcome.choices)

    grader = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="grades_given"
    )
    graded_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["attempt", "question"], name="unique_grade_per_question"),
            models.CheckConstraint(
                condition=models.Q(score__gte=0) & models.Q(score__lte=models.F("max_score")),
                name="grade_score_range",
            ),
            models.CheckConstraint(condition=models.Q(max_score__gt=0), name="grade_max_score_positive"),
        ]

    def __str__(self):
        return f"Grade {self.score}/{self.max_score} for attempt {self.attempt_id} / q {self.question_id}"


class Result(models.Model):
    """Denormalized attempt-level summary. At most one per attempt."""

    attempt = models.OneToOneField(ExamAttempt, on_delete=models.CASCADE, related_name="result")
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name="results")
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="results")

    score = models.DecimalField(max_digits=10, decimal_places=2)
    total_marks = models.DecimalField(max_digits=10, decimal_places=2)
    percentage = models.PositiveIntegerField()
    passed = models.BooleanField(default=False)
    feedback = models.TextField(blank=True, null=True)

    graded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="results_graded"
    )
    graded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-graded_at"]

    def __str__(self):
        return f"{self.student} - {self.exam.title}: {self.score}/{self.total_marks}"


class StudentStats(models.Model):
    student = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="stats")
    total_attempts = models.PositiveIntegerField(default=0)
    graded_attempts = models.PositiveIntegerField(default=0)
    average_score = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    average_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "student stats"

    def __str__(self):
        return f"Stats for {self.student}"
