from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser

from .serializers import (
    RideSerializer,
    RideCreateSerializer,
    RideCancelSerializer,
    RideNotificationSerializer,
)

# Import from services layer
from services.matching import dispatch_ride
from services import ride_management
from services.ride_management import RideServiceError


def _error_response(exc: RideServiceError) -> Response:
    return Response(
        {'error': str(exc), 'error_code': exc.error_code},
        status=exc.http_status
    )


def _forbidden(message: str) -> Response:
    return Response({'error': message}, status=status.HTTP_403_FORBIDDEN)


# ==================== Passenger Ride APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_ride_request(request):
    """Create a new ride request; dispatch to nearby drivers runs in the background"""
    if not request.user.is_passenger:
        return _forbidden('Only passengers can create ride requests')

    serializer = RideCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = ride_management.create_ride_request(request.user, **serializer.validated_data)
    except RideServiceError as exc:
        return _error_response(exc)

    return Response({
        **RideSerializer(result.ride).data,
        'message': result.message,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_current_ride(request):
    """
    Get passenger's current active ride (POLLING ENDPOINT)
    
    Fallback for clients that missed a WebSocket push
    """
    if not request.user.is_passenger:
        return _forbidden('Only passengers can access this endpoint')

    ride = ride_management.get_current_passenger_ride(request.user)
    if not ride:
        return Response({
            'has_active_ride': False,
            'message': 'No active ride found'
        })

    return Response({
        'has_active_ride': True,
        'ride': RideSerializer(ride).data,
        'status': ride.status,
        'driver_assigned': ride.driver_id is not None,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_ride(request, ride_id):
    """Cancel ride by passenger (requested or accepted rides only)"""
    serializer = RideCancelSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = ride_management.cancel_ride_by_passenger(
            request.user,
            ride_id,
            serializer.validated_data.get('reason') or 'No reason provided',
        )
    except RideServiceError as exc:
        return _error_response(exc)

    return Response({
        'message': result.message,
        'ride': RideSerializer(result.ride).data,
        **(result.extra or {}),
    })


# ==================== Dispatch Trigger ====================

@api_view(['POST'])
@permission_classes([IsAdminUser])
def trigger_dispatch(request, ride_id):
    """Run dispatch for a ride synchronously. Safe to call repeatedly."""
    try:
        result = dispatch_ride(ride_id)
    except RideServiceError as exc:
        return _error_response(exc)

    return Response({
        'ride_id': result.ride_id,
        'outcome': result.outcome,
        'notified': result.notified,
    })


# ==================== Driver Notification APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def pending_notifications(request):
    """Driver's open offers, nearest first. Clients poll this on reconnect."""
    if not request.user.is_driver:
        return _forbidden('Only drivers can access this endpoint')

    notifications = ride_management.get_pending_notifications(request.user)
    return Response({
        'notifications': RideNotificationSerializer(notifications, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_notification(request, notification_id):
    """Accept a ride offer. Exactly one driver per ride gets a 200."""
    if not request.user.is_driver:
        return _forbidden('Only drivers can accept rides')

    try:
        result = ride_management.accept_notification(request.user, notification_id)
    except RideServiceError as exc:
        return _error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'ride': RideSerializer(result.ride).data,
        'notification_id': result.notification.id,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def decline_notification(request, notification_id):
    """Decline a ride offer. Declining twice is not an error."""
    if not request.user.is_driver:
        return _forbidden('Only drivers can decline rides')

    try:
        result = ride_management.decline_notification(request.user, notification_id)
    except RideServiceError as exc:
        return _error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'notification_id': result.notification.id,
        'status': result.notification.status,
    })


# ==================== Driver Ride APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_driver_current_ride(request):
    """Driver's assigned ride, if any"""
    if not request.user.is_driver:
        return _forbidden('Only drivers can access this endpoint')

    ride = ride_management.get_current_driver_ride(request.user)
    return Response({
        'has_active_ride': ride is not None,
        'ride': RideSerializer(ride).data if ride else None,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def start_ride(request, ride_id):
    """Driver picked up the passenger"""
    try:
        result = ride_management.start_ride(request.user, ride_id)
    except RideServiceError as exc:
        return _error_response(exc)

    return Response({'message': result.message, 'ride': RideSerializer(result.ride).data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def complete_ride(request, ride_id):
    """Driver dropped the passenger off"""
    try:
        result = ride_management.complete_ride(request.user, ride_id)
    except RideServiceError as exc:
        return _error_response(exc)

    return Response({'message': result.message, 'ride': RideSerializer(result.ride).data})
