import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("exams", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ExamAttempt",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("submitted", "Submitted"),
                            ("in_review", "In Review"),
                            ("graded", "Graded"),
                            ("closed", "Closed"),
                        ],
                        default="draft",
                        max_length=20,
                    ),
                ),
                ("answers", models.JSONField(blank=True, default=dict)),
                ("question_snapshot", models.JSONField(blank=True, default=list)),
                ("started_at", models.DateTimeField(auto_now_add=True)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("time_taken", models.PositiveIntegerField(blank=True, help_text="Seconds", null=True)),
                ("was_forced", models.BooleanField(default=False, help_text="Submitted by the countdown")),
                ("total_score", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("version", models.PositiveIntegerField(default=1)),
                ("graded_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "exam",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="attempts", to="exams.exam"
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attempts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-submitted_at", "-started_at"],
                "indexes": [models.Index(fields=["exam", "status"], name="attempt_exam_status_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("exam", "student"), name="unique_attempt_per_student"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Grade",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("score", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("max_score", models.DecimalField(decimal_places=2, max_digits=10)),
                ("is_correct", models.BooleanField(null=True)),
                (
                    "outcome",
                    models.CharField(
                        choices=[
                            ("correct", "Correct"),
                            ("partial", "Partial"),
                            ("incorrect", "Incorrect"),
                            ("unanswered", "Unanswered"),
                        ],
                        max_length=20,
                    ),
                ),
                ("graded_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "attempt",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="grades",
                        to="assessments.examattempt",
                    ),
                ),
                (
                    "grader",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="grades_given",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "question",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.RESTRICT, related_name="grades", to="exams.question"
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("attempt", "question"), name="unique_grade_per_question"),
                    models.CheckConstraint(
                        condition=models.Q(("score__gte", 0), ("score__lte", models.F("max_score"))),
                        name="grade_score_range",
                    ),
                    models.CheckConstraint(condition=models.Q(("max_score__gt", 0)), name="grade_max_score_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Result",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("score", models.DecimalField(decimal_places=2, max_digits=10)),
                ("total_marks", models.DecimalField(decimal_places=2, max_digits=10)),
                ("percentage", models.PositiveIntegerField()),
                ("passed", models.BooleanField(default=False)),
                ("feedback", models.TextField(blank=True, null=True)),
                ("graded_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "attempt",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="result",
                        to="assessments.examattempt",
                    ),
                ),
                (
                    "exam",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="results", to="exams.exam"
                    ),
                ),
                (
                    "graded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="results_graded",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="results",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-graded_at"],
            },
        ),
        migrations.CreateModel(
            name="StudentStats",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("total_attempts", models.PositiveIntegerField(default=0)),
                ("graded_attempts", models.PositiveIntegerField(default=0)),
                ("average_score", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("average_percentage", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "student",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stats",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "student stats",
            },
        ),
    ]
