from django.urls import path

from .consumers import AttemptConsumer, NotificationConsumer

websocket_urlpatterns = [
    path("ws/notifications/", NotificationConsumer.as_asgi()),
    path("ws/attempts/<int:attempt_id>/", AttemptConsumer.as_asgi()),
]
