import json

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from assessments.models import ExamAttempt
from assessments.notifications import attempt_group, user_group


class NotificationConsumer(AsyncWebsocketConsumer):
    """Every attempt change that concerns the connected user."""

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close()
            return
        self.group_name = user_group(user.pk)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def attempt_change(self, event):
        await self.send(text_data=json.dumps(event.get("payload", {})))


class AttemptConsumer(NotificationConsumer):
    """Changes to one attempt, for its student and the exam's teacher."""

    async def connect(self):
        user = self.scope.get("user")
        attempt_id = self.scope["url_route"]["kwargs"]["attempt_id"]
        if user is None or not user.is_authenticated or not await self.can_follow(user, attempt_id):
            await self.close()
            return
        self.group_name = attempt_group(attempt_id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    @database_sync_to_async
    def can_follow(self, user, attempt_id):
        attempt = ExamAttempt.objects.select_related("exam").filter(pk=attempt_id).first()
        if attempt is None:
            return False
        return attempt.student_id == user.pk or attempt.exam.is_owned_by(user)
