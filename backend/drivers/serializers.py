from rest_framework import serializers
from drivers.models import DriverLocation


class DriverLocationSerializer(serializers.ModelSerializer):
    """
    Driver's stored live location
    """
    driver_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = DriverLocation
        fields = [
            "driver_id",
            "latitude",
            "longitude",
            "heading",
            "speed",
            "accuracy",
            "is_online",
            "last_update",
        ]


class DriverStatusSerializer(serializers.Serializer):
    """
    Serializer for updating driver availability (online/offline).
    """
    status = serializers.ChoiceField(choices=["online", "offline"])


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating driver GPS location.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)
    heading = serializers.FloatField(required=False, allow_null=True)
    speed = serializers.FloatField(required=False, allow_null=True)
    accuracy = serializers.FloatField(required=False, allow_null=True)
    is_online = serializers.BooleanField(required=False)
