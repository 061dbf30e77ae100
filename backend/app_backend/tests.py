from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory

from .views import health_check


@patch('app_backend.views.redis.Redis.from_url')
class HealthCheckTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()

    def test_healthy_when_ride_tasks_registered(self, mock_redis):
        response = health_check(self.factory.get('/health/'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['services']['celery'], 'healthy')
        self.assertEqual(response.data['overdue_rides'], 0)

    def test_unhealthy_when_deadline_task_missing(self, mock_redis):
        with patch('app_backend.views.celery_app') as mock_app:
            mock_app.tasks = {}
            response = health_check(self.factory.get('/health/'))

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data['services']['celery'], 'unhealthy: task not registered')
