from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers import services
from drivers.models import DriverLocation
from drivers.views import DriverLocationUpdateView, DriverStatusView


class LocationFeedTests(TestCase):
    def setUp(self):
        self.driver = User.objects.create_user(username="driver", password="driver1234", role=User.DRIVER)

    def test_update_creates_then_upserts_single_row(self):
        services.update_driver_location(self.driver, "12.971600", "77.594600", is_online=True)
        services.update_driver_location(self.driver, "12.972000", "77.595000", heading=90.0)

        self.assertEqual(DriverLocation.objects.filter(driver=self.driver).count(), 1)
        location = DriverLocation.objects.get(driver=self.driver)
        self.assertEqual(location.latitude, Decimal("12.972000"))
        self.assertEqual(location.heading, 90.0)
        # Online flag survives an update that does not mention it
        self.assertTrue(location.is_online)

    def test_update_refreshes_last_update(self):
        location = services.update_driver_location(self.driver, 12.9716, 77.5946)
        stale = timezone.now() - timedelta(minutes=10)
        DriverLocation.objects.filter(pk=location.pk).update(last_update=stale)

        services.update_driver_location(self.driver, 12.9716, 77.5946)

        location.refresh_from_db()
        self.assertGreater(location.last_update, stale)

    def test_set_online_without_location_returns_none(self):
        self.assertIsNone(services.set_driver_online(self.driver, True))

    def test_set_online_flips_flag(self):
        services.update_driver_location(self.driver, 12.9716, 77.5946)

        location = services.set_driver_online(self.driver, True)
        self.assertTrue(location.is_online)

        location = services.set_driver_online(self.driver, False)
        self.assertFalse(location.is_online)

    def test_fresh_online_excludes_stale_and_offline(self):
        other = User.objects.create_user(username="other", password="driver1234", role=User.DRIVER)
        third = User.objects.create_user(username="third", password="driver1234", role=User.DRIVER)
        now = timezone.now()
        DriverLocation.objects.create(driver=self.driver, latitude=1, longitude=1, is_online=True, last_update=now)
        DriverLocation.objects.create(
            driver=other, latitude=1, longitude=1, is_online=True, last_update=now - timedelta(minutes=5)
        )
        DriverLocation.objects.create(driver=third, latitude=1, longitude=1, is_online=False, last_update=now)

        fresh = DriverLocation.objects.fresh_online(now - timedelta(seconds=120))

        self.assertEqual([loc.driver_id for loc in fresh], [self.driver.id])


class DriverViewTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.driver = User.objects.create_user(username="driver", password="driver1234", role=User.DRIVER)
        self.passenger = User.objects.create_user(username="passenger", password="pass1234")

    def test_post_location(self):
        request = self.factory.post(
            "/api/driver/location/",
            {"latitude": "12.971600", "longitude": "77.594600", "is_online": True},
            format="json",
        )
        force_authenticate(request, user=self.driver)
        response = DriverLocationUpdateView.as_view()(request)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["driver_id"], self.driver.id)
        self.assertTrue(DriverLocation.objects.get(driver=self.driver).is_online)

    def test_post_location_rejects_out_of_range(self):
        request = self.factory.post("/api/driver/location/", {"latitude": "91", "longitude": "0"}, format="json")
        force_authenticate(request, user=self.driver)
        response = DriverLocationUpdateView.as_view()(request)

        self.assertEqual(response.status_code, 400)
        self.assertFalse(DriverLocation.objects.exists())

    def test_get_location_before_any_report(self):
        request = self.factory.get("/api/driver/location/")
        force_authenticate(request, user=self.driver)
        response = DriverLocationUpdateView.as_view()(request)

        self.assertEqual(response.status_code, 404)

    def test_passenger_cannot_report_location(self):
        request = self.factory.post("/api/driver/location/", {"latitude": "1", "longitude": "1"}, format="json")
        force_authenticate(request, user=self.passenger)
        response = DriverLocationUpdateView.as_view()(request)

        self.assertEqual(response.status_code, 403)

    def test_status_requires_known_location(self):
        request = self.factory.put("/api/driver/status/", {"status": "online"}, format="json")
        force_authenticate(request, user=self.driver)
        response = DriverStatusView.as_view()(request)

        self.assertEqual(response.status_code, 400)

    def test_status_goes_offline(self):
        services.update_driver_location(self.driver, 12.9716, 77.5946, is_online=True)

        request = self.factory.put("/api/driver/status/", {"status": "offline"}, format="json")
        force_authenticate(request, user=self.driver)
        response = DriverStatusView.as_view()(request)

        self.assertEqual(response.status_code, 200)
        self.assertFalse(DriverLocation.objects.get(driver=self.driver).is_online)
