from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers.models import DriverLocation
from drivers.serializers import (
    DriverLocationSerializer,
    DriverStatusSerializer,
    LocationUpdateSerializer,
)
from drivers import services


# Utility: Ensure request.user is a driver
def require_driver(user):
    if not user.is_driver:
        return Response({"error": "Only drivers allowed"}, status=status.HTTP_403_FORBIDDEN)
    return None


class DriverLocationUpdateView(APIView):
    """HTTP fallback for the location feed; the driver WebSocket sends the same updates."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        denied = require_driver(request.user)
        if denied:
            return denied

        location = DriverLocation.objects.filter(driver=request.user).first()
        if location is None:
            return Response({"error": "No location reported yet"}, status=status.HTTP_404_NOT_FOUND)
        return Response(DriverLocationSerializer(location).data)

    def post(self, request):
        denied = require_driver(request.user)
        if denied:
            return denied

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        location = services.update_driver_location(
            request.user,
            data["latitude"],
            data["longitude"],
            heading=data.get("heading"),
            speed=data.get("speed"),
            accuracy=data.get("accuracy"),
            is_online=data.get("is_online"),
        )

        return Response({
            "message": "Location updated",
            **DriverLocationSerializer(location).data,
        })


class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request):
        denied = require_driver(request.user)
        if denied:
            return denied

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        location = services.set_driver_online(request.user, new_status == "online")
        if location is None:
            return Response(
                {"error": "Send your location before going online"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response({
            "message": f"Status updated to {new_status}",
            "status": new_status
        })
