"""
Exam session clock.

The server clock is authoritative: remaining time is always derived from
``attempt.started_at`` and the exam's duration. ``Countdown`` is the
per-second driver a client-side session (or a test) runs against that value.
"""
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from assessments.exceptions import ExamConfigurationError

NORMAL = "normal"
WARNING = "warning"
CRITICAL = "critical"


def urgency_for(remaining_seconds):
    """Presentation hint only; never affects scoring or submission."""
    if remaining_seconds is None:
        return NORMAL
    if remaining_seconds < settings.TIMER_CRITICAL_SECONDS:
        return CRITICAL
    if remaining_seconds < settings.TIMER_WARNING_SECONDS:
        return WARNING
    return NORMAL


def format_clock(seconds):
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class Countdown:
    """
    Decrements once per elapsed second and forces submission at zero.

    ``on_expire`` runs at most once. After ``cancel()`` (manual submission or
    leaving the exam view) further ticks do nothing.
    """

    def __init__(self, duration_minutes, on_expire):
        if duration_minutes is None or duration_minutes <= 0:
            raise ExamConfigurationError("A timed exam needs a positive duration.")
        self.remaining = int(duration_minutes) * 60
        self._on_expire = on_expire
        self._cancelled = False
        self._expired = False

    @classmethod
    def for_attempt(cls, attempt, on_expire, now=None):
        countdown = cls(attempt.exam.duration, on_expire)
        remaining = remaining_seconds(attempt, now)
        if remaining is not None:
            countdown.remaining = remaining
        return countdown

    @property
    def active(self):
        return not (self._cancelled or self._expired)

    @property
    def urgency(self):
        return urgency_for(self.remaining)

    def tick(self, seconds=1):
        if not self.active:
            return self.remaining
        self.remaining = max(0, self.remaining - int(seconds))
        if self.remaining == 0:
            self._expire()
        return self.remaining

    def cancel(self):
        self._cancelled = True

    def _expire(self):
        if self._expired:
            return
        self._expired = True
        self._on_expire()


def deadline_for(attempt):
    """When the attempt's countdown reaches zero, or None for untimed exams."""
    exam = attempt.exam
    deadline = None
    if exam.is_timed:
        deadline = attempt.started_at + timedelta(minutes=exam.duration)
    if exam.auto_close and exam.end_time:
        deadline = min(deadline, exam.end_time) if deadline else exam.end_time
    return deadline


def remaining_seconds(attempt, now=None):
    deadline = deadline_for(attempt)
    if deadline is None:
        return None
    now = now or timezone.now()
    return max(0, int((deadline - now).total_seconds()))


def is_expired(attempt, now=None, grace_seconds=0):
    deadline = deadline_for(attempt)
    if deadline is None:
        return False
    now = now or timezone.now()
    return now > deadline + timedelta(seconds=grace_seconds)


def elapsed_seconds(attempt, now=None):
    """Time spent on the attempt in seconds, never counting past the deadline."""
    now = now or timezone.now()
    deadline = deadline_for(attempt)
    if deadline is not None:
        now = min(now, deadline)
    return max(0, int((now - attempt.started_at).total_seconds()))
