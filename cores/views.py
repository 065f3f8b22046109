from rest_framework import generics
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import AuditLog, PlatformSetting
from .serializers import AuditLogSerializer, PlatformSettingSerializer


class PlatformSettingView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        serializer = PlatformSettingSerializer(PlatformSetting.load())
        return Response(serializer.data)

    def put(self, request):
        platform_settings = PlatformSetting.load()
        serializer = PlatformSettingSerializer(platform_settings, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        AuditLog.record(
            actor=request.user,
            action=AuditLog.Action.SETTINGS,
            target=platform_settings,
            details="Updated platform configuration variables",
        )
        return Response(serializer.data)


class AuditLogListView(generics.ListAPIView):
    # Select related avoids N+1 queries when fetching users
    queryset = AuditLog.objects.select_related("actor").all().order_by("-timestamp")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        queryset = super().get_queryset()
        action = self.request.query_params.get("action")
        if action:
            queryset = queryset.filter(action=action)
        target_model = self.request.query_params.get("target_model")
        if target_model:
            queryset = queryset.filter(target_model=target_model)
        return queryset
