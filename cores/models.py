from django.conf import settings
from django.core.cache import cache
from django.db import models


class PlatformSetting(models.Model):
    # --- General ---
    site_name = models.CharField(max_length=100, default="Online Exam Portal")
    support_email = models.EmailField(default="support@example.com")

    # --- Exam Defaults ---
    default_pass_percentage = models.PositiveIntegerField(default=60, help_text="Default passing percentage")
    default_exam_duration = models.PositiveIntegerField(default=60, help_text="Default duration in minutes")

    CACHE_KEY = "platform_settings"

    def save(self, *args, **kwargs):
        self.pk = 1  # Singleton pattern
        super().save(*args, **kwargs)
        cache.set(self.CACHE_KEY, self)

    def delete(self, *args, **kwargs):
        pass

    @classmethod
    def load(cls):
        obj = cache.get(cls.CACHE_KEY)
        if obj is None:
            obj, _ = cls.objects.get_or_create(pk=1)
            cache.set(cls.CACHE_KEY, obj)
        return obj

    def __str__(self):
        return "Platform Settings"


class AuditLog(models.Model):
    class Action(models.TextChoices):
        CREATE = "CREATE", "Create"
        UPDATE = "UPDATE", "Update"
        DELETE = "DELETE", "Delete"
        PUBLISH = "PUBLISH", "Exam Published"
        ARCHIVE = "ARCHIVE", "Exam Archived"
        SUBMIT = "SUBMIT", "Attempt Submitted"
        GRADE = "GRADE", "Grade Submitted"
        CLOSE = "CLOSE", "Attempt Closed"
        SETTINGS = "SETTINGS", "Settings Changed"

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name="audit_logs"
    )
    action = models.CharField(max_length=20, choices=Action.choices)
    target_model = models.CharField(max_length=50, help_text="e.g., Exam, ExamAttempt, User")
    target_object_id = models.CharField(max_length=100, blank=True, null=True)
    details = models.TextField(blank=True, help_text="Description of changes")
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-timestamp"]

    def __str__(self):
        return f"{self.actor} - {self.action} - {self.timestamp}"

    @classmethod
    def record(cls, *, actor, action, target, details=""):
        return cls.objects.create(
            actor=actor,
            action=action,
            target_model=type(target).__name__,
            target_object_id=str(target.pk) if target.pk is not None else None,
            details=details,
        )
