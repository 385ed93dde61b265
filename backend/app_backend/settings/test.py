from .settings import *

SECRET_KEY = "test-secret-key"
DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

DISPATCH = {
    **DISPATCH,
    "CACHE_BACKEND": "locmem",
    "GEOCODER": "common.geocoding.NullGeocoder",
}

LOGGING["loggers"]["services"]["level"] = "WARNING"
LOGGING["loggers"]["offers"]["level"] = "WARNING"
