from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate
from unittest.mock import patch

from accounts.models import User
from .models import Ride, RideNotification
from .tasks import dispatch_ride_task, reap_overdue_rides_task, ride_deadline_task
from .views import (
	accept_notification,
	cancel_ride,
	create_ride_request,
	decline_notification,
	get_current_ride,
	pending_notifications,
	trigger_dispatch,
)


@patch('rides.tasks.ride_deadline_task.apply_async')
@patch('realtime.notifications.send_to_group', return_value=True)
class RideNotificationFlowTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.passenger = User.objects.create_user(
			username='passenger',
			password='pass1234',
			role=User.PASSENGER,
			phone_number='9000000000'
		)
		self.driver_one = User.objects.create_user(
			username='driver_one',
			password='driver1234',
			role=User.DRIVER,
			phone_number='9000000001'
		)
		self.driver_two = User.objects.create_user(
			username='driver_two',
			password='driver1234',
			role=User.DRIVER,
			phone_number='9000000002'
		)

		self.ride = Ride.objects.create(
			passenger=self.passenger,
			pickup_latitude='28.613900',
			pickup_longitude='77.209000',
			pickup_address='Connaught Place',
			dropoff_address='India Gate',
			broadcast_at=timezone.now(),
		)

		self.notification_one = RideNotification.objects.create(
			ride=self.ride,
			driver=self.driver_one,
			distance_km=0.3,
			expires_at=self.ride.broadcast_deadline,
		)
		self.notification_two = RideNotification.objects.create(
			ride=self.ride,
			driver=self.driver_two,
			distance_km=0.9,
			expires_at=self.ride.broadcast_deadline,
		)

	def test_accept_notification_assigns_ride(self, mock_send, mock_arm):
		request = self.factory.post('/api/rides/notifications/%d/accept/' % self.notification_one.id)
		force_authenticate(request, user=self.driver_one)
		response = accept_notification(request, notification_id=self.notification_one.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], 'accepted')

		self.ride.refresh_from_db()
		self.notification_one.refresh_from_db()
		self.notification_two.refresh_from_db()

		self.assertEqual(self.ride.status, 'accepted')
		self.assertEqual(self.ride.driver, self.driver_one)
		self.assertEqual(self.notification_one.status, 'accepted')
		self.assertEqual(self.notification_two.status, 'expired')

	def test_losing_driver_gets_conflict(self, mock_send, mock_arm):
		first = self.factory.post('/accept/')
		force_authenticate(first, user=self.driver_one)
		accept_notification(first, notification_id=self.notification_one.id)

		second = self.factory.post('/accept/')
		force_authenticate(second, user=self.driver_two)
		response = accept_notification(second, notification_id=self.notification_two.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error_code'], 'conflict')

	def test_accept_after_deadline_reports_expired(self, mock_send, mock_arm):
		Ride.objects.filter(pk=self.ride.pk).update(broadcast_deadline=timezone.now() - timedelta(seconds=1))

		request = self.factory.post('/accept/')
		force_authenticate(request, user=self.driver_one)
		response = accept_notification(request, notification_id=self.notification_one.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error_code'], 'expired')

	def test_accept_someone_elses_notification(self, mock_send, mock_arm):
		request = self.factory.post('/accept/')
		force_authenticate(request, user=self.driver_two)
		response = accept_notification(request, notification_id=self.notification_one.id)

		self.assertEqual(response.status_code, 404)

	def test_passenger_cannot_accept(self, mock_send, mock_arm):
		request = self.factory.post('/accept/')
		force_authenticate(request, user=self.passenger)
		response = accept_notification(request, notification_id=self.notification_one.id)

		self.assertEqual(response.status_code, 403)

	def test_decline_twice_succeeds(self, mock_send, mock_arm):
		for _ in range(2):
			request = self.factory.post('/decline/')
			force_authenticate(request, user=self.driver_one)
			response = decline_notification(request, notification_id=self.notification_one.id)
			self.assertEqual(response.status_code, 200)
			self.assertEqual(response.data['status'], 'cancelled')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'requested')

	def test_pending_notifications_lists_open_offers(self, mock_send, mock_arm):
		request = self.factory.get('/api/rides/notifications/pending/')
		force_authenticate(request, user=self.driver_two)
		response = pending_notifications(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data['notifications']), 1)
		offer = response.data['notifications'][0]
		self.assertEqual(offer['id'], self.notification_two.id)
		self.assertEqual(offer['ride']['id'], self.ride.id)

	def test_cancel_ride(self, mock_send, mock_arm):
		request = self.factory.post('/api/rides/%d/cancel/' % self.ride.id, {'reason': 'Plans changed'}, format='json')
		force_authenticate(request, user=self.passenger)
		response = cancel_ride(request, ride_id=self.ride.id)

		self.assertEqual(response.status_code, 200)
		self.ride.refresh_from_db()
		self.notification_one.refresh_from_db()
		self.assertEqual(self.ride.status, 'cancelled')
		self.assertEqual(self.notification_one.status, 'expired')

	def test_current_ride(self, mock_send, mock_arm):
		request = self.factory.get('/api/rides/current/')
		force_authenticate(request, user=self.passenger)
		response = get_current_ride(request)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['has_active_ride'])
		self.assertEqual(response.data['status'], 'requested')

	def test_reap_expired_rides_command(self, mock_send, mock_arm):
		Ride.objects.filter(pk=self.ride.pk).update(broadcast_deadline=timezone.now() - timedelta(seconds=5))

		out = StringIO()
		call_command('reap_expired_rides', stdout=out)

		self.ride.refresh_from_db()
		self.notification_one.refresh_from_db()
		self.assertEqual(self.ride.status, 'expired')
		self.assertEqual(self.notification_one.status, 'expired')
		self.assertIn('Expired 1 ride(s)', out.getvalue())


class RideRequestViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.passenger = User.objects.create_user(username='passenger', password='pass1234')
		self.driver = User.objects.create_user(username='driver', password='driver1234', role=User.DRIVER)
		self.staff = User.objects.create_user(username='ops', password='ops12345', is_staff=True)

	@patch('rides.tasks.dispatch_ride_task.delay')
	def test_create_ride_request(self, mock_delay):
		payload = {
			'pickup_latitude': '28.613900',
			'pickup_longitude': '77.209000',
			'pickup_address': 'Connaught Place',
			'estimated_price': '180.00',
		}
		request = self.factory.post('/api/rides/', payload, format='json')
		force_authenticate(request, user=self.passenger)

		with self.captureOnCommitCallbacks(execute=True):
			response = create_ride_request(request)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'requested')
		mock_delay.assert_called_once_with(response.data['id'])

	@patch('rides.tasks.dispatch_ride_task.delay')
	def test_second_active_ride_is_rejected(self, mock_delay):
		Ride.objects.create(passenger=self.passenger, pickup_latitude=1, pickup_longitude=1)

		request = self.factory.post('/api/rides/', {'pickup_latitude': '1', 'pickup_longitude': '1'}, format='json')
		force_authenticate(request, user=self.passenger)
		response = create_ride_request(request)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error_code'], 'active_ride_exists')
		mock_delay.assert_not_called()

	def test_driver_cannot_request_ride(self):
		request = self.factory.post('/api/rides/', {'pickup_latitude': '1', 'pickup_longitude': '1'}, format='json')
		force_authenticate(request, user=self.driver)
		response = create_ride_request(request)

		self.assertEqual(response.status_code, 403)

	@patch('rides.views.dispatch_ride')
	def test_trigger_dispatch_requires_staff(self, mock_dispatch):
		ride = Ride.objects.create(passenger=self.passenger, pickup_latitude=1, pickup_longitude=1)

		request = self.factory.post('/api/rides/%d/dispatch/' % ride.id)
		force_authenticate(request, user=self.passenger)
		response = trigger_dispatch(request, ride_id=ride.id)

		self.assertEqual(response.status_code, 403)
		mock_dispatch.assert_not_called()

	def test_trigger_dispatch_unknown_ride(self):
		request = self.factory.post('/api/rides/999/dispatch/')
		force_authenticate(request, user=self.staff)
		response = trigger_dispatch(request, ride_id=999)

		self.assertEqual(response.status_code, 404)


class RideTaskTests(TestCase):
	def setUp(self):
		self.passenger = User.objects.create_user(username='passenger', password='pass1234')
		self.ride = Ride.objects.create(passenger=self.passenger, pickup_latitude=1, pickup_longitude=1)

	@patch('services.matching.dispatch_ride')
	def test_dispatch_task_runs_pipeline(self, mock_dispatch):
		mock_dispatch.return_value.outcome = 'broadcast'
		mock_dispatch.return_value.notified = 2

		self.assertEqual(dispatch_ride_task.run(self.ride.id), 'broadcast')
		mock_dispatch.assert_called_once_with(self.ride.id)

	def test_dispatch_task_ignores_unknown_ride(self):
		self.assertIsNone(dispatch_ride_task.run(123456))

	def test_deadline_task_before_deadline_rearms(self):
		with patch('rides.tasks.ride_deadline_task.apply_async') as mock_arm:
			self.assertFalse(ride_deadline_task.run(self.ride.id))
		mock_arm.assert_called_once()

	@patch('realtime.notifications.send_to_group', return_value=True)
	def test_reaper_task(self, mock_send):
		Ride.objects.filter(pk=self.ride.pk).update(broadcast_deadline=timezone.now() - timedelta(seconds=1))

		self.assertEqual(reap_overdue_rides_task.run(), (1, 0))
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'expired')
