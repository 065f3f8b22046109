import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PlatformSetting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("site_name", models.CharField(default="Online Exam Portal", max_length=100)),
                ("support_email", models.EmailField(default="support@example.com", max_length=254)),
                (
                    "default_pass_percentage",
                    models.PositiveIntegerField(default=60, help_text="Default passing percentage"),
                ),
                (
                    "default_exam_duration",
                    models.PositiveIntegerField(default=60, help_text="Default duration in minutes"),
                ),
            ],
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("CREATE", "Create"),
                            ("UPDATE", "Update"),
                            ("DELETE", "Delete"),
                            ("PUBLISH", "Exam Published"),
                            ("ARCHIVE", "Exam Archived"),
                            ("SUBMIT", "Attempt Submitted"),
                            ("GRADE", "Grade Submitted"),
                            ("CLOSE", "Attempt Closed"),
                            ("SETTINGS", "Settings Changed"),
                        ],
                        max_length=20,
                    ),
                ),
                ("target_model", models.CharField(help_text="e.g., Exam, ExamAttempt, User", max_length=50)),
                ("target_object_id", models.CharField(blank=True, max_length=100, null=True)),
                ("details", models.TextField(blank=True, help_text="Description of changes")),
                ("timestamp", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-timestamp"],
            },
        ),
    ]
