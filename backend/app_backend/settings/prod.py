from .settings import *
import os
from dotenv import load_dotenv
load_dotenv(os.path.join(BASE_DIR, '..', '.env'))

SECRET_KEY = os.environ["SECRET_KEY"]
DEBUG = False
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(',')
CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(',')

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels_redis.core.RedisChannelLayer",
        "CONFIG": {
            "hosts": [os.getenv("REDIS_URL", "redis://localhost:6379/0")],
        },
    }
}

DISPATCH = {
    **DISPATCH,
    "CACHE_BACKEND": "redis",
    "CACHE_REDIS_URL": os.getenv("DISPATCH_CACHE_REDIS_URL", os.getenv("REDIS_URL", "redis://localhost:6379/1")),
}
