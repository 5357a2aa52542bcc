import logging

from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)


def verificar_supabase():
    """URL y llave pública son obligatorias; formatos sospechosos sólo se advierten."""
    url = getattr(settings, "SUPABASE_URL", "")
    key = getattr(settings, "SUPABASE_ANON_KEY", "")
    if not url or not key:
        raise ImproperlyConfigured("Faltan SUPABASE_URL y/o SUPABASE_ANON_KEY en el entorno.")
    if not url.startswith("https://") or ".supabase.co" not in url:
        logger.warning("SUPABASE_URL no parece una URL de Supabase: %s", url)
    if len(key) < 50:
        logger.warning("SUPABASE_ANON_KEY parece demasiado corta (%d caracteres)", len(key))
    if not getattr(settings, "SUPABASE_SERVICE_ROLE_KEY", ""):
        logger.info("Sin SUPABASE_SERVICE_ROLE_KEY: la gestión de administradores no estará disponible")


class PanelConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "panel"
    verbose_name = "Panel administrativo"

    def ready(self):
        verificar_supabase()
        from . import signals  # noqa: F401
