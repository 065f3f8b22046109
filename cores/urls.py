from django.urls import path

from .views import AuditLogListView, PlatformSettingView

urlpatterns = [
    path("admin/settings/", PlatformSettingView.as_view(), name="platform-settings"),
    path("admin/audit-logs/", AuditLogListView.as_view(), name="audit-logs"),
]
