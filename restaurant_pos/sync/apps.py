from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class SyncConfig(AppConfig):
    name = "restaurant_pos.sync"
    verbose_name = _("Realtime sync client")
