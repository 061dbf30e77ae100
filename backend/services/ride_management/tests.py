import threading
from datetime import timedelta
from unittest.mock import patch

from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone

from accounts.models import User
from rides.models import Ride, RideNotification
from services.ride_management import (
    ActiveRideExistsError,
    NotificationExpiredError,
    NotificationNotFoundError,
    RideNotAvailableError,
    RideNotFoundError,
    RideServiceError,
    accept_notification,
    cancel_ride_by_passenger,
    complete_ride,
    create_ride_request,
    decline_notification,
    expire_unclaimed_ride,
    get_pending_notifications,
    on_ride_deadline,
    reap_overdue_rides,
    start_ride,
)


class RideServiceTestCase(TestCase):
    """A requested ride already broadcast to three drivers."""

    def setUp(self):
        self.passenger = User.objects.create_user(username="passenger", password="pass1234")
        self.drivers = [
            User.objects.create_user(username=f"driver_{i}", password="driver1234", role=User.DRIVER)
            for i in range(3)
        ]
        self.ride = Ride.objects.create(
            passenger=self.passenger,
            pickup_latitude="28.613900",
            pickup_longitude="77.209000",
            broadcast_at=timezone.now(),
        )
        self.notifications = [
            RideNotification.objects.create(
                ride=self.ride,
                driver=driver,
                distance_km=distance,
                expires_at=self.ride.broadcast_deadline,
            )
            for driver, distance in zip(self.drivers, [0.4, 1.2, 2.9])
        ]

        send_patcher = patch("realtime.notifications.send_to_group", return_value=True)
        self.mock_send = send_patcher.start()
        self.addCleanup(send_patcher.stop)

        deadline_patcher = patch("rides.tasks.ride_deadline_task.apply_async")
        self.mock_arm = deadline_patcher.start()
        self.addCleanup(deadline_patcher.stop)

    def statuses(self):
        return {n.driver_id: n.status for n in RideNotification.objects.filter(ride=self.ride)}

    def sent_to(self, group):
        return [c.args[1]["type"] for c in self.mock_send.call_args_list if c.args[0] == group]


class AcceptNotificationTests(RideServiceTestCase):

    def test_winner_takes_ride_and_siblings_expire(self):
        winner, loser_one, loser_two = self.drivers

        with self.captureOnCommitCallbacks(execute=True):
            result = accept_notification(winner, self.notifications[0].id)

        self.assertTrue(result.success)
        self.assertEqual(result.extra["superseded"], 2)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.ACCEPTED)
        self.assertEqual(self.ride.driver, winner)
        self.assertIsNotNone(self.ride.accepted_at)
        self.assertEqual(self.statuses(), {
            winner.id: RideNotification.ACCEPTED,
            loser_one.id: RideNotification.EXPIRED,
            loser_two.id: RideNotification.EXPIRED,
        })

        self.assertIn("ride_accepted", self.sent_to(f"user_{self.passenger.id}"))
        self.assertEqual(self.sent_to(f"driver_{loser_one.id}"), ["notification_superseded"])
        self.assertEqual(self.sent_to(f"driver_{loser_two.id}"), ["notification_superseded"])
        self.assertEqual(self.sent_to(f"driver_{winner.id}"), [])

    def test_second_accept_conflicts(self):
        accept_notification(self.drivers[1], self.notifications[1].id)

        with self.assertRaises(RideNotAvailableError) as ctx:
            accept_notification(self.drivers[0], self.notifications[0].id)

        self.assertEqual(ctx.exception.error_code, "conflict")
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.driver, self.drivers[1])
        self.assertEqual(
            RideNotification.objects.filter(ride=self.ride, status=RideNotification.ACCEPTED).count(), 1
        )

    def test_accept_after_deadline_is_expired(self):
        late = self.ride.broadcast_deadline + timedelta(seconds=1)

        with self.assertRaises(NotificationExpiredError):
            accept_notification(self.drivers[0], self.notifications[0].id, now=late)

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.REQUESTED)

    def test_declined_offer_cannot_be_accepted_and_ride_claim_rolls_back(self):
        decline_notification(self.drivers[0], self.notifications[0].id)

        with self.assertRaises(NotificationExpiredError):
            accept_notification(self.drivers[0], self.notifications[0].id)

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.REQUESTED)
        self.assertIsNone(self.ride.driver)
        # The other offers are untouched
        self.assertEqual(self.statuses()[self.drivers[1].id], RideNotification.PENDING)

    def test_foreign_or_unknown_notification(self):
        with self.assertRaises(NotificationNotFoundError):
            accept_notification(self.drivers[1], self.notifications[0].id)
        with self.assertRaises(NotificationNotFoundError):
            accept_notification(self.drivers[1], 424242)

    def test_cancelled_ride_conflicts(self):
        cancel_ride_by_passenger(self.passenger, self.ride.id, "changed plans")

        with self.assertRaises(RideNotAvailableError):
            accept_notification(self.drivers[0], self.notifications[0].id)


class DeclineNotificationTests(RideServiceTestCase):

    def test_decline_is_idempotent(self):
        first = decline_notification(self.drivers[0], self.notifications[0].id)
        second = decline_notification(self.drivers[0], self.notifications[0].id)

        self.assertTrue(first.extra["changed"])
        self.assertFalse(second.extra["changed"])
        self.assertEqual(second.notification.status, RideNotification.CANCELLED)

    def test_decline_leaves_ride_open(self):
        deadline = self.ride.broadcast_deadline

        decline_notification(self.drivers[0], self.notifications[0].id)

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.REQUESTED)
        self.assertEqual(self.ride.broadcast_deadline, deadline)

    def test_decline_after_accept_keeps_accepted(self):
        accept_notification(self.drivers[0], self.notifications[0].id)

        result = decline_notification(self.drivers[0], self.notifications[0].id)

        self.assertFalse(result.extra["changed"])
        self.assertEqual(result.notification.status, RideNotification.ACCEPTED)

    def test_decline_unknown(self):
        with self.assertRaises(NotificationNotFoundError):
            decline_notification(self.drivers[0], self.notifications[1].id)


class DeadlineTests(RideServiceTestCase):

    def test_deadline_after_accept_is_noop(self):
        accept_notification(self.drivers[0], self.notifications[0].id)
        late = self.ride.broadcast_deadline + timedelta(seconds=1)

        self.assertFalse(on_ride_deadline(self.ride.id, now=late))

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.ACCEPTED)
        self.assertEqual(self.statuses()[self.drivers[0].id], RideNotification.ACCEPTED)

    def test_all_declined_then_deadline_expires(self):
        for driver, notification in zip(self.drivers, self.notifications):
            decline_notification(driver, notification.id)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.REQUESTED)

        late = self.ride.broadcast_deadline + timedelta(seconds=1)
        with self.captureOnCommitCallbacks(execute=True):
            self.assertTrue(on_ride_deadline(self.ride.id, now=late))

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.EXPIRED)
        # Declines stay declines
        self.assertEqual(set(self.statuses().values()), {RideNotification.CANCELLED})
        self.assertIn("ride_expired", self.sent_to(f"user_{self.passenger.id}"))

    def test_deadline_expires_pending_offers(self):
        late = self.ride.broadcast_deadline + timedelta(seconds=1)

        with self.captureOnCommitCallbacks(execute=True):
            on_ride_deadline(self.ride.id, now=late)

        self.assertEqual(set(self.statuses().values()), {RideNotification.EXPIRED})
        for driver in self.drivers:
            self.assertEqual(self.sent_to(f"driver_{driver.id}"), ["notification_expired"])

    def test_early_deadline_rearms(self):
        early = self.ride.broadcast_deadline - timedelta(seconds=5)

        self.assertFalse(on_ride_deadline(self.ride.id, now=early))

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.REQUESTED)
        self.mock_arm.assert_called_once()

    def test_unknown_ride(self):
        self.assertFalse(on_ride_deadline(987654))

    def test_expire_twice(self):
        self.assertTrue(expire_unclaimed_ride(self.ride.id))
        self.assertFalse(expire_unclaimed_ride(self.ride.id))

    def test_accept_and_deadline_race_has_one_outcome(self):
        late = self.ride.broadcast_deadline + timedelta(seconds=1)
        on_ride_deadline(self.ride.id, now=late)

        with self.assertRaises(RideNotAvailableError):
            accept_notification(self.drivers[0], self.notifications[0].id)

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.EXPIRED)
        self.assertIsNone(self.ride.driver)


class ReapOverdueRidesTests(RideServiceTestCase):

    def test_reaps_overdue_ride(self):
        late = self.ride.broadcast_deadline + timedelta(seconds=1)

        rides_expired, _ = reap_overdue_rides(now=late)

        self.assertEqual(rides_expired, 1)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.EXPIRED)

    def test_leaves_open_ride_alone(self):
        self.assertEqual(reap_overdue_rides(), (0, 0))

    def test_settles_orphaned_pending_rows(self):
        # Ride resolved without settling its offers, e.g. a crash mid-way
        Ride.objects.filter(pk=self.ride.pk).update(status=Ride.CANCELLED)

        rides_expired, notifications_expired = reap_overdue_rides()

        self.assertEqual((rides_expired, notifications_expired), (0, 3))
        self.assertEqual(set(self.statuses().values()), {RideNotification.EXPIRED})


class PassengerLifecycleTests(RideServiceTestCase):

    @patch("rides.tasks.dispatch_ride_task.delay")
    def test_create_enqueues_dispatch_after_commit(self, mock_delay):
        other = User.objects.create_user(username="other", password="pass1234")

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            result = create_ride_request(other, "28.600000", "77.200000", pickup_address="Khan Market")

        mock_delay.assert_not_called()
        self.assertEqual(len(callbacks), 1)
        callbacks[0]()
        mock_delay.assert_called_once_with(result.ride.id)

        ride = result.ride
        self.assertEqual(ride.status, Ride.REQUESTED)
        self.assertEqual(
            ride.broadcast_deadline - ride.requested_at, timedelta(seconds=50)
        )

    def test_second_active_ride_rejected(self):
        with self.assertRaises(ActiveRideExistsError):
            create_ride_request(self.passenger, "28.600000", "77.200000")

    def test_cancel_requested_ride_supersedes_offers(self):
        decline_notification(self.drivers[2], self.notifications[2].id)

        with self.captureOnCommitCallbacks(execute=True):
            result = cancel_ride_by_passenger(self.passenger, self.ride.id, "changed plans")

        self.assertEqual(result.ride.status, Ride.CANCELLED)
        self.assertEqual(result.ride.cancellation_reason, "changed plans")
        self.assertEqual(self.statuses(), {
            self.drivers[0].id: RideNotification.EXPIRED,
            self.drivers[1].id: RideNotification.EXPIRED,
            self.drivers[2].id: RideNotification.CANCELLED,
        })
        self.assertEqual(self.sent_to(f"driver_{self.drivers[0].id}"), ["notification_superseded"])
        self.assertEqual(self.sent_to(f"driver_{self.drivers[2].id}"), [])

    def test_cancel_accepted_ride_notifies_driver(self):
        accept_notification(self.drivers[0], self.notifications[0].id)

        with self.captureOnCommitCallbacks(execute=True):
            result = cancel_ride_by_passenger(self.passenger, self.ride.id, "")

        self.assertTrue(result.extra["was_assigned"])
        self.assertEqual(self.sent_to(f"driver_{self.drivers[0].id}"), ["ride_cancelled"])

    def test_cannot_cancel_someone_elses_ride(self):
        other = User.objects.create_user(username="other", password="pass1234")
        with self.assertRaises(RideNotFoundError):
            cancel_ride_by_passenger(other, self.ride.id)

    def test_cannot_cancel_expired_ride(self):
        expire_unclaimed_ride(self.ride.id)
        with self.assertRaises(RideNotAvailableError):
            cancel_ride_by_passenger(self.passenger, self.ride.id)


class DriverLifecycleTests(RideServiceTestCase):

    def test_start_then_complete(self):
        driver = self.drivers[0]
        accept_notification(driver, self.notifications[0].id)

        started = start_ride(driver, self.ride.id)
        self.assertEqual(started.ride.status, Ride.IN_PROGRESS)
        self.assertIsNotNone(started.ride.started_at)

        completed = complete_ride(driver, self.ride.id)
        self.assertEqual(completed.ride.status, Ride.COMPLETED)
        self.assertIsNotNone(completed.ride.completed_at)

    def test_complete_before_start_conflicts(self):
        accept_notification(self.drivers[0], self.notifications[0].id)
        with self.assertRaises(RideNotAvailableError):
            complete_ride(self.drivers[0], self.ride.id)

    def test_only_assigned_driver_can_start(self):
        accept_notification(self.drivers[0], self.notifications[0].id)
        with self.assertRaises(RideNotFoundError):
            start_ride(self.drivers[1], self.ride.id)


class PendingNotificationTests(RideServiceTestCase):

    def test_nearest_first(self):
        pending = get_pending_notifications(self.drivers[1])
        self.assertEqual([n.id for n in pending], [self.notifications[1].id])

    def test_hides_offers_past_deadline(self):
        late = self.ride.broadcast_deadline + timedelta(seconds=1)
        self.assertFalse(get_pending_notifications(self.drivers[0], now=late).exists())

    def test_hides_offers_of_resolved_rides(self):
        accept_notification(self.drivers[1], self.notifications[1].id)
        self.assertFalse(get_pending_notifications(self.drivers[0]).exists())


class ConcurrentAcceptTests(TransactionTestCase):
    """Accepts racing on separate connections, as separate workers would."""

    def setUp(self):
        self.passenger = User.objects.create_user(username="passenger", password="pass1234")
        self.drivers = [
            User.objects.create_user(username=f"driver_{i}", password="driver1234", role=User.DRIVER)
            for i in range(6)
        ]
        self.ride = Ride.objects.create(
            passenger=self.passenger,
            pickup_latitude="28.613900",
            pickup_longitude="77.209000",
            broadcast_at=timezone.now(),
        )
        self.notifications = [
            RideNotification.objects.create(
                ride=self.ride,
                driver=driver,
                distance_km=0.5 + i,
                expires_at=self.ride.broadcast_deadline,
            )
            for i, driver in enumerate(self.drivers)
        ]

        send_patcher = patch("realtime.notifications.send_to_group", return_value=True)
        send_patcher.start()
        self.addCleanup(send_patcher.stop)

    def test_exactly_one_driver_wins(self):
        barrier = threading.Barrier(len(self.drivers))
        outcomes = {}

        def attempt(driver, notification_id):
            try:
                barrier.wait()
                accept_notification(driver, notification_id)
                outcomes[driver.id] = "success"
            except RideServiceError as exc:
                outcomes[driver.id] = exc.error_code
            except Exception as exc:
                outcomes[driver.id] = f"unhandled {exc!r}"
            finally:
                connection.close()

        threads = [
            threading.Thread(target=attempt, args=(driver, notification.id))
            for driver, notification in zip(self.drivers, self.notifications)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(sorted(outcomes.values()), ["conflict"] * 5 + ["success"])

        winner_id = next(driver_id for driver_id, outcome in outcomes.items() if outcome == "success")
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.ACCEPTED)
        self.assertEqual(self.ride.driver_id, winner_id)
        accepted = RideNotification.objects.filter(ride=self.ride, status=RideNotification.ACCEPTED)
        self.assertEqual([n.driver_id for n in accepted], [winner_id])
        self.assertEqual(
            RideNotification.objects.filter(ride=self.ride, status=RideNotification.EXPIRED).count(), 5
        )
