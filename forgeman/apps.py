"""Django app configuration for Forgeman."""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class ForgemanConfig(AppConfig):
    """Configuration for Forgeman app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "forgeman"
    verbose_name = _("Execução da Produção")
