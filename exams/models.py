# exams/models.py
import math

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone


def default_passing_marks(total_marks, pass_percentage):
    return math.floor(total_marks * pass_percentage / 100)


class Exam(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"
        ARCHIVED = "archived", "Archived"

    # Forward-only lifecycle
    STATUS_ORDER = [Status.DRAFT, Status.PUBLISHED, Status.ARCHIVED]

    title = models.CharField(max_length=255)
    subject = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    duration = models.PositiveIntegerField(validators=[MinValueValidator(1)], help_text="Minutes")
    total_marks = models.PositiveIntegerField(default=0)
    passing_marks = models.PositiveIntegerField(default=0)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    is_timed = models.BooleanField(default=True)
    auto_close = models.BooleanField(default=False)

    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="exams")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.title

    def ordered_questions(self):
        return [eq.question for eq in self.exam_questions.select_related("question").order_by("order_number")]

    def is_open(self, now=None):
        """Published and inside the optional scheduling window."""
        now = now or timezone.now()
        if self.status != self.Status.PUBLISHED:
            return False
        if self.start_time and now < self.start_time:
            return False
        if self.end_time and now > self.end_time:
            return False
        return True

    def is_owned_by(self, user):
        return self.created_by_id == user.id or getattr(user, "is_admin_role", False)

    def points_total(self):
        return self.exam_questions.aggregate(total=Sum("question__points"))["total"] or 0

    def sync_total_marks(self, default_pass_percentage):
        """
        Sets total_marks to the points of the assigned questions. passing_marks
        keeps its share of the old total, or takes the default percentage when
        there was none.
        """
        new_total = self.points_total()
        if self.total_marks > 0:
            passing = self.passing_marks * new_total // self.total_marks
        else:
            passing = default_passing_marks(new_total, default_pass_percentage)
        self.total_marks = new_total
        self.passing_marks = min(passing, new_total)
        self.save(update_fields=["total_marks", "passing_marks", "updated_at"])


class Question(models.Model):
    class QuestionType(models.TextChoices):
        MCQ = "mcq", "Multiple Choice"
        DESCRIPTIVE = "descriptive", "Descriptive"

    class Difficulty(models.TextChoices):
        EASY = "easy", "Easy"
        MEDIUM = "medium", "Medium"
        HARD = "hard", "Hard"

    question_type = models.CharField(max_length=20, choices=QuestionType.choices, default=QuestionType.MCQ)
    question_text = models.TextField()

    # MCQ only: ordered option strings, one of which is the correct answer
    options = models.JSONField(default=list, blank=True)
    correct_answer = models.TextField(blank=True, help_text="Correct option text, or a reference answer")
    points = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])

    # Metadata for the bank
    subject = models.CharField(max_length=100, blank=True)
    difficulty = models.CharField(max_length=20, choices=Difficulty.choices, default=Difficulty.MEDIUM)

    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="questions")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.question_text[:50]}..."

    @property
    def is_mcq(self):
        return self.question_type == self.QuestionType.MCQ

    def snapshot(self):
        """Frozen copy of the gradeable content, stored on the attempt at submission."""
        return {
            "id": self.id,
            "question_type": self.question_type,
            "question_text": self.question_text,
            "options": list(self.options or []),
            "correct_answer": self.correct_answer,
            "points": self.points,
        }


class ExamQuestion(models.Model):
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name="exam_questions")
    # Remove a question from its exams before deleting it from the bank
    question = models.ForeignKey(Question, on_delete=models.RESTRICT, related_name="exam_links")
    order_number = models.PositiveIntegerField()

    class Meta:
        ordering = ["order_number"]
        constraints = [
            models.UniqueConstraint(fields=["exam", "question"], name="unique_exam_question"),
            models.UniqueConstraint(fields=["exam", "order_number"], name="unique_exam_question_order"),
        ]

    def __str__(self):
        return f"{self.exam_id}#{self.order_number} -> {self.question_id}"
