from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from .models import Ride, RideNotification


class RideSerializer(serializers.ModelSerializer):
    """Full ride details for the passenger and the assigned driver"""
    passenger = UserBasicSerializer(read_only=True)
    driver = UserBasicSerializer(read_only=True)
    
    class Meta:
        model = Ride
        fields = ['id', 'passenger', 'driver',
                  'pickup_latitude', 'pickup_longitude', 'pickup_address',
                  'dropoff_latitude', 'dropoff_longitude', 'dropoff_address',
                  'estimated_price', 'distance_km', 'estimated_duration_minutes',
                  'status', 'requested_at', 'broadcast_deadline', 'accepted_at',
                  'started_at', 'completed_at', 'cancelled_at', 'expired_at',
                  'cancellation_reason']
        read_only_fields = fields


class RideSummarySerializer(serializers.ModelSerializer):
    """Flat ride summary pushed over WebSockets and embedded in offers"""

    class Meta:
        model = Ride
        fields = ['id', 'status', 'passenger_id', 'driver_id',
                  'pickup_latitude', 'pickup_longitude', 'pickup_address',
                  'dropoff_latitude', 'dropoff_longitude', 'dropoff_address',
                  'estimated_price', 'distance_km', 'estimated_duration_minutes',
                  'broadcast_deadline']
        read_only_fields = fields


class RideCreateSerializer(serializers.Serializer):
    """Serializer for creating ride requests"""
    pickup_latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    pickup_longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)
    pickup_address = serializers.CharField(required=False, allow_blank=True, default='')
    dropoff_latitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, min_value=-90, max_value=90, required=False, allow_null=True
    )
    dropoff_longitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, min_value=-180, max_value=180, required=False, allow_null=True
    )
    dropoff_address = serializers.CharField(required=False, allow_blank=True, default='')
    estimated_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    distance_km = serializers.DecimalField(
        max_digits=8, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    estimated_duration_minutes = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class RideNotificationSerializer(serializers.ModelSerializer):
    """A driver's offer with the ride summary it refers to"""
    ride = RideSummarySerializer(read_only=True)

    class Meta:
        model = RideNotification
        fields = ['id', 'ride', 'distance_km', 'status', 'created_at', 'expires_at', 'responded_at']
        read_only_fields = fields


class RideCancelSerializer(serializers.Serializer):
    """Serializer for ride cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True)
