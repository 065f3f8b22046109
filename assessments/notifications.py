"""
Realtime change feed for attempts.

Domain code calls ``publish_attempt_change`` after a write; the message is
sent to the channel layer once the surrounding transaction commits, so
subscribers never see a change that was rolled back. Consumers in
``assessments.consumers`` relay it to WebSocket clients.
"""
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

logger = logging.getLogger(__name__)

SUBMITTED = "attempt.submitted"
IN_REVIEW = "attempt.in_review"
GRADED = "attempt.graded"
CLOSED = "attempt.closed"


def attempt_group(attempt_id):
    return f"attempt_{attempt_id}"


def user_group(user_id):
    return f"user_{user_id}"


def attempt_groups(attempt):
    return [
        attempt_group(attempt.pk),
        user_group(attempt.student_id),
        user_group(attempt.exam.created_by_id),
    ]


def build_payload(attempt, event):
    return {
        "event": event,
        "attempt_id": attempt.pk,
        "exam_id": attempt.exam_id,
        "student_id": attempt.student_id,
        "status": attempt.status,
        "version": attempt.version,
        "total_score": str(attempt.total_score),
    }


def publish_attempt_change(attempt, event):
    payload = build_payload(attempt, event)
    groups = attempt_groups(attempt)
    transaction.on_commit(lambda: broadcast(groups, payload))


def broadcast(groups, payload):
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    send = async_to_sync(channel_layer.group_send)
    for group in groups:
        try:
            send(group, {"type": "attempt.change", "payload": payload})
        except Exception:
            # The write already committed; a lost notification only delays a refresh
            logger.warning("Could not notify %s of %s", group, payload["event"], exc_info=True)
