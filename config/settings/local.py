from .base import *  # noqa: F403
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
DEBUG = True
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="local-Yb2QnR8sLw4Tz0Kx6Vm1Pc9Hd3Gf7Ja5Ue2Oi8Nr4Bt6Ws0Ek1Dl3Fq5Ag",
)
ALLOWED_HOSTS = ["localhost", "0.0.0.0", "127.0.0.1"]  # noqa: S104

# LOGGING
# ------------------------------------------------------------------------------
LOGGING["loggers"]["restaurant_pos"]["level"] = "DEBUG"  # noqa: F405
