# panel/signals.py

import logging

from django.dispatch import Signal, receiver
from django.utils import timezone

from .errors import StoreError
from .models import TABLA_ADMINISTRADORES

logger = logging.getLogger(__name__)

# Enviada tras un login válido (perfil existente y activo). kwargs: perfil, store
administrador_autenticado = Signal()


@receiver(administrador_autenticado)
async def registrar_ultimo_acceso(sender, perfil, store, **kwargs):
    """Marca el último acceso del administrador; una falla no bloquea el login."""
    try:
        await store.update(TABLA_ADMINISTRADORES, perfil.id, {"ultimo_acceso": timezone.now().isoformat()})
    except StoreError as exc:
        logger.warning("No se pudo registrar el último acceso de %s: %s", perfil.email, exc)
