from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Passenger APIs
    path('', views.create_ride_request, name='create-ride'),
    path('current/', views.get_current_ride, name='current-ride'),
    path('<int:ride_id>/cancel/', views.cancel_ride, name='cancel-ride'),

    # Dispatch trigger (staff / internal)
    path('<int:ride_id>/dispatch/', views.trigger_dispatch, name='dispatch-ride'),

    # Driver offer actions
    path('notifications/pending/', views.pending_notifications, name='pending-notifications'),
    path('notifications/<int:notification_id>/accept/', views.accept_notification, name='accept-notification'),
    path('notifications/<int:notification_id>/decline/', views.decline_notification, name='decline-notification'),

    # Driver ride actions
    path('driver/current/', views.get_driver_current_ride, name='driver-current-ride'),
    path('<int:ride_id>/start/', views.start_ride, name='start-ride'),
    path('<int:ride_id>/complete/', views.complete_ride, name='complete-ride'),
]
