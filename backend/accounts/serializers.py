from rest_framework import serializers

from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """Lite user info embedded in ride payloads (passenger or driver)."""

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "first_name",
            "role",
            "phone_number",
        ]
        read_only_fields = fields
