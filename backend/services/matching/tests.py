from datetime import timedelta
from unittest.mock import patch

from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from accounts.models import User
from drivers.models import DriverLocation
from rides.models import Ride, RideNotification
from services.matching import (
    ALREADY_PROCESSED,
    BROADCAST,
    DEADLINE_PASSED,
    NO_CANDIDATES,
    Candidate,
    DispatchPolicy,
    broadcast,
    dispatch_ride,
    find_candidates,
    get_dispatch_policy,
)
from services.ride_management import RideNotFoundError

PICKUP = (12.9716, 77.5946)
KM_PER_DEGREE_LAT = 111.195


def location_at(driver_id, distance_km, *, online=True, age_seconds=0, now=None):
    now = now or timezone.now()
    return DriverLocation(
        driver_id=driver_id,
        latitude=round(PICKUP[0] + distance_km / KM_PER_DEGREE_LAT, 6),
        longitude=PICKUP[1],
        is_online=online,
        last_update=now - timedelta(seconds=age_seconds),
    )


class DispatchPolicyTests(SimpleTestCase):

    @override_settings(RIDE_DISPATCH={})
    def test_defaults(self):
        policy = get_dispatch_policy()
        self.assertEqual(policy.dispatch_window_seconds, 50)
        self.assertEqual(policy.search_radius_km, 10.0)
        self.assertEqual(policy.max_candidates, 5)

    @override_settings(RIDE_DISPATCH={"max_candidates": 0})
    def test_rejects_non_positive_values(self):
        with self.assertRaises(ImproperlyConfigured):
            get_dispatch_policy()

    @override_settings(RIDE_DISPATCH={"radius": 3})
    def test_rejects_unknown_keys(self):
        with self.assertRaises(ImproperlyConfigured):
            get_dispatch_policy()


class FindCandidatesTests(SimpleTestCase):

    def setUp(self):
        self.now = timezone.now()
        self.policy = DispatchPolicy()

    def find(self, locations, **kwargs):
        return find_candidates(*PICKUP, now=self.now, locations=locations, policy=self.policy, **kwargs)

    def test_nearest_first_and_capped(self):
        locations = [
            location_at(1, 3.2, now=self.now),
            location_at(2, 1.1, now=self.now),
            location_at(3, 7.9, now=self.now),
            location_at(4, 0.5, now=self.now),
        ]

        candidates = self.find(locations, max_candidates=3)

        self.assertEqual([c.driver_id for c in candidates], [4, 2, 1])
        for candidate, expected in zip(candidates, [0.5, 1.1, 3.2]):
            self.assertAlmostEqual(candidate.distance_km, expected, places=2)

    def test_stale_and_offline_drivers_are_skipped(self):
        locations = [
            location_at(1, 1.0, now=self.now, age_seconds=121),
            location_at(2, 2.0, now=self.now, online=False),
            location_at(3, 3.0, now=self.now, age_seconds=119),
        ]

        self.assertEqual([c.driver_id for c in self.find(locations)], [3])

    def test_radius_is_inclusive_limit(self):
        locations = [location_at(1, 4.0, now=self.now), location_at(2, 6.0, now=self.now)]

        self.assertEqual([c.driver_id for c in self.find(locations, max_radius_km=5)], [1])

    def test_duplicate_driver_keeps_nearest(self):
        locations = [location_at(1, 2.0, now=self.now), location_at(1, 0.7, now=self.now)]

        candidates = self.find(locations)

        self.assertEqual(len(candidates), 1)
        self.assertAlmostEqual(candidates[0].distance_km, 0.7, places=2)

    def test_ties_ordered_by_driver_id(self):
        locations = [location_at(9, 1.0, now=self.now), location_at(3, 1.0, now=self.now)]

        self.assertEqual([c.driver_id for c in self.find(locations)], [3, 9])

    def test_empty_result_is_valid(self):
        self.assertEqual(self.find([]), [])

    def test_invalid_pickup_raises(self):
        with self.assertRaises(ValueError):
            find_candidates(95, 0, locations=[], policy=self.policy)
        with self.assertRaises(ValueError):
            find_candidates(None, 0, locations=[], policy=self.policy)


class DispatchTestCase(TestCase):

    def setUp(self):
        self.passenger = User.objects.create_user(username="passenger", password="pass1234")
        self.drivers = [
            User.objects.create_user(username=f"driver_{i}", password="driver1234", role=User.DRIVER)
            for i in range(3)
        ]
        now = timezone.now()
        for driver, distance in zip(self.drivers, [2.5, 0.8, 1.6]):
            location = location_at(driver.id, distance, now=now)
            location.driver = driver
            location.save()

        self.ride = Ride.objects.create(
            passenger=self.passenger,
            pickup_latitude=PICKUP[0],
            pickup_longitude=PICKUP[1],
            pickup_address="MG Road",
        )

        send_patcher = patch("realtime.notifications.send_to_group", return_value=True)
        self.mock_send = send_patcher.start()
        self.addCleanup(send_patcher.stop)

        deadline_patcher = patch("rides.tasks.ride_deadline_task.apply_async")
        self.mock_arm = deadline_patcher.start()
        self.addCleanup(deadline_patcher.stop)

    def sent(self, event_type):
        return [c.args for c in self.mock_send.call_args_list if c.args[1]["type"] == event_type]


class BroadcastTests(DispatchTestCase):

    def test_creates_pending_notifications_sharing_the_deadline(self):
        candidates = [Candidate(self.drivers[1].id, 0.8), Candidate(self.drivers[2].id, 1.6)]

        with self.captureOnCommitCallbacks(execute=True):
            created = broadcast(self.ride, candidates)

        self.assertEqual(created, 2)
        self.ride.refresh_from_db()
        self.assertIsNotNone(self.ride.broadcast_at)
        notifications = list(self.ride.notifications.all())
        self.assertEqual([n.driver_id for n in notifications], [self.drivers[1].id, self.drivers[2].id])
        for notification in notifications:
            self.assertEqual(notification.status, RideNotification.PENDING)
            self.assertEqual(notification.expires_at, self.ride.broadcast_deadline)

        pushed = self.sent("ride_notification")
        self.assertEqual(sorted(group for group, _ in pushed), sorted(
            f"driver_{d.id}" for d in self.drivers[1:]
        ))
        self.mock_arm.assert_called_once()
        self.assertEqual(self.mock_arm.call_args.kwargs["eta"], self.ride.broadcast_deadline)

    def test_second_broadcast_is_a_noop(self):
        candidates = [Candidate(self.drivers[0].id, 2.5)]
        with self.captureOnCommitCallbacks(execute=True):
            broadcast(self.ride, candidates)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            created = broadcast(self.ride, candidates)

        self.assertEqual(created, 0)
        self.assertEqual(callbacks, [])
        self.assertEqual(self.ride.notifications.count(), 1)
        self.mock_arm.assert_called_once()

    def test_no_candidates_expires_ride(self):
        with self.captureOnCommitCallbacks(execute=True):
            created = broadcast(self.ride, [])

        self.assertEqual(created, 0)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.EXPIRED)
        self.assertIsNotNone(self.ride.expired_at)
        self.assertEqual(len(self.sent("no_drivers_available")), 1)
        self.mock_arm.assert_not_called()

    def test_not_requested_ride_is_skipped(self):
        Ride.objects.filter(pk=self.ride.pk).update(status=Ride.CANCELLED)

        created = broadcast(self.ride, [Candidate(self.drivers[0].id, 2.5)])

        self.assertEqual(created, 0)
        self.assertFalse(RideNotification.objects.exists())


class DispatchRideTests(DispatchTestCase):

    def test_broadcasts_to_nearby_drivers(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = dispatch_ride(self.ride.id)

        self.assertEqual(result.outcome, BROADCAST)
        self.assertEqual(result.notified, 3)
        self.assertEqual(
            [c.driver_id for c in result.candidates],
            [self.drivers[1].id, self.drivers[2].id, self.drivers[0].id],
        )
        self.assertEqual(self.ride.notifications.filter(status=RideNotification.PENDING).count(), 3)
        self.mock_arm.assert_called_once()

    def test_redelivered_trigger_is_idempotent(self):
        with self.captureOnCommitCallbacks(execute=True):
            dispatch_ride(self.ride.id)
        with self.captureOnCommitCallbacks(execute=True):
            again = dispatch_ride(self.ride.id)

        self.assertEqual(again.outcome, ALREADY_PROCESSED)
        self.assertEqual(self.ride.notifications.count(), 3)
        self.assertEqual(len(self.sent("ride_notification")), 3)
        self.mock_arm.assert_called_once()

    def test_policy_caps_candidates(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = dispatch_ride(self.ride.id, policy=DispatchPolicy(max_candidates=2))

        self.assertEqual(result.notified, 2)
        self.assertFalse(self.ride.notifications.filter(driver=self.drivers[0]).exists())

    def test_no_candidates(self):
        DriverLocation.objects.update(is_online=False)

        with self.captureOnCommitCallbacks(execute=True):
            with self.assertLogs("services", level="WARNING") as logs:
                result = dispatch_ride(self.ride.id)

        self.assertEqual(result.outcome, NO_CANDIDATES)
        # One warning for the event, from the orchestrator only
        self.assertEqual(len(logs.records), 1)
        self.assertEqual(logs.records[0].name, "services.matching.orchestrator")
        self.assertIn("NoCandidates", logs.output[0])
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.EXPIRED)
        self.assertFalse(RideNotification.objects.exists())

    def test_trigger_after_deadline_expires_ride(self):
        later = self.ride.broadcast_deadline + timedelta(seconds=1)

        with self.captureOnCommitCallbacks(execute=True):
            result = dispatch_ride(self.ride.id, now=later)

        self.assertEqual(result.outcome, DEADLINE_PASSED)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, Ride.EXPIRED)
        self.assertEqual(len(self.sent("ride_expired")), 1)

    def test_unknown_ride(self):
        with self.assertRaises(RideNotFoundError):
            dispatch_ride(987654)
