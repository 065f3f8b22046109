from rest_framework import serializers

from .models import AuditLog, PlatformSetting


class PlatformSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = PlatformSetting
        fields = "__all__"
        read_only_fields = ["id"]

    def validate_default_pass_percentage(self, value):
        if value > 100:
            raise serializers.ValidationError("Passing percentage cannot exceed 100.")
        return value

    def validate_default_exam_duration(self, value):
        if value <= 0:
            raise serializers.ValidationError("Duration must be at least one minute.")
        return value


class AuditLogSerializer(serializers.ModelSerializer):
    actor_email = serializers.CharField(source="actor.email", read_only=True)
    actor_role = serializers.CharField(source="actor.role", read_only=True)

    class Meta:
        model = AuditLog
        fields = [
            "id", "actor", "actor_email", "actor_role", "action",
            "target_model", "target_object_id", "timestamp", "details",
        ]
