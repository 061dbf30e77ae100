from .settings import *  # noqa: F401,F403

SECRET_KEY = "test-secret-key"
DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'test.sqlite3',
        'OPTIONS': {'transaction_mode': 'IMMEDIATE', 'timeout': 20},
        # File-backed so threaded tests see real database locking
        'TEST': {'NAME': BASE_DIR / 'test_db.sqlite3'},
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

# Tasks are enqueued to an in-process broker and never run inline; tests call
# the services directly or patch the tasks.
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
CELERY_TASK_ALWAYS_EAGER = False

RIDE_DISPATCH = {
    "dispatch_window_seconds": 50,
    "search_radius_km": 10.0,
    "max_candidates": 5,
    "location_freshness_seconds": 120,
}

LOGGING["root"]["level"] = "CRITICAL"  # noqa: F405
