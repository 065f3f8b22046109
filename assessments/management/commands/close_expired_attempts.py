from django.conf import settings
from django.core.management.base import BaseCommand

from assessments.models import ExamAttempt
from assessments.services import timer
from assessments.services.attempts import close_expired_attempts


class Command(BaseCommand):
    help = 'Force-submits draft attempts whose countdown has run out'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='List expired drafts without submitting them')

    def handle(self, *args, **options):
        if options['dry_run']:
            drafts = ExamAttempt.objects.filter(status=ExamAttempt.Status.DRAFT).select_related('exam', 'student')
            expired = [a for a in drafts if timer.is_expired(a, grace_seconds=settings.ATTEMPT_GRACE_SECONDS)]
            for attempt in expired:
                self.stdout.write(f"Would submit attempt {attempt.pk} ({attempt.student} / {attempt.exam.title})")
            self.stdout.write(self.style.SUCCESS(f"{len(expired)} expired draft(s)"))
            return

        submitted = close_expired_attempts()
        self.stdout.write(self.style.SUCCESS(f"Submitted {len(submitted)} expired attempt(s)"))
