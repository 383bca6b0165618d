from .base import *  # noqa: F403
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
SECRET_KEY = env("DJANGO_SECRET_KEY")
ALLOWED_HOSTS = env.list("DJANGO_ALLOWED_HOSTS")

# SECURITY
# ------------------------------------------------------------------------------
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True

# REALTIME
# ------------------------------------------------------------------------------
# Browsers on the restaurant floor must be listed explicitly in production.
REALTIME_CORS_ALLOWED_ORIGINS = env.list("REALTIME_CORS_ALLOWED_ORIGINS")
