"""Construcción del par (auth, store) por request.

La sesión de Supabase viaja firmada en la sesión de Django; cada request
crea su propio cliente, le inyecta esa sesión y la devuelve actualizada.
``PANEL_BACKEND_FACTORY`` permite sustituir la fábrica (las pruebas usan
dobles en memoria).
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string
from supabase import acreate_client
from supabase.lib.client_options import AsyncClientOptions

from .auth import Session, SupabaseAuthProvider
from .store import SupabaseStore

logger = logging.getLogger(__name__)

SESSION_KEY = "panel_supabase_session"


@dataclass
class Backend:
    auth: SupabaseAuthProvider
    store: SupabaseStore


def _opciones() -> AsyncClientOptions:
    # el refresco lo hace set_session en cada request; nada persiste en el proceso
    return AsyncClientOptions(auto_refresh_token=False, persist_session=False)


async def cliente_servicio():
    return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY, options=_opciones())


async def supabase_backend(request) -> Backend:
    client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY, options=_opciones())
    admin_factory = cliente_servicio if settings.SUPABASE_SERVICE_ROLE_KEY else None
    auth = SupabaseAuthProvider(client, session=sesion_guardada(request), admin_client_factory=admin_factory)
    return Backend(auth=auth, store=SupabaseStore(client))


async def get_backend(request) -> Backend:
    """Backend del request (se crea una sola vez por request)."""
    backend = getattr(request, "_panel_backend", None)
    if backend is None:
        factory = import_string(settings.PANEL_BACKEND_FACTORY)
        backend = factory(request)
        if inspect.isawaitable(backend):
            backend = await backend
        request._panel_backend = backend
    return backend


# ----------------------------------------------------------------------
# Sesión de Supabase dentro de la sesión de Django
# ----------------------------------------------------------------------
def sesion_guardada(request) -> Optional[Session]:
    return Session.from_dict(request.session.get(SESSION_KEY))


def guardar_sesion(request, session: Session) -> None:
    request.session[SESSION_KEY] = session.to_dict()


def limpiar_sesion(request) -> None:
    request.session.pop(SESSION_KEY, None)
