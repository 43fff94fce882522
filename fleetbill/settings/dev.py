from .base import *

DEBUG = True

ALLOWED_HOSTS = ["127.0.0.1", "localhost"]

# Cookies non sécurisés en dev
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

# DRF renderers plus larges en dev (browsable API)
REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = (
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
)

# Logs lisibles en console
LOGGING["handlers"]["console"]["formatter"] = "simple"
