# panel/decorators.py
import logging
from functools import wraps
from urllib.parse import urlencode

from django.conf import settings
from django.contrib import messages
from django.shortcuts import redirect
from django.urls import reverse

from .auth import AuthEvent
from .backends import get_backend, guardar_sesion, limpiar_sesion
from .guard import GuardState, SessionGuard
from .lifecycle import Navigator
from .models import ROL_ADMIN, ROLES_ESCRITURA
from .services import obtener_perfil

logger = logging.getLogger(__name__)

MSG_SIN_PERMISO = "No tienes permisos para realizar esta acción"


def _persistir_tokens(request):
    """Suscriptor aparte del guard: guarda en la sesión los tokens refrescados."""

    def _on_event(event, session):
        if event == AuthEvent.TOKEN_REFRESHED and session is not None:
            guardar_sesion(request, session)

    return _on_event


def _redirigir_login(request, destino):
    limpiar_sesion(request)
    if request.method == "GET":
        return redirect(f"{destino}?{urlencode({'next': request.get_full_path()})}")
    return redirect(destino)


def admin_required(view_func=None, *, roles=None):
    """
    Protege una vista async del área administrativa.

    Monta un SessionGuard por request; si no autoriza, redirige al login.
    Con ``roles`` además exige que el perfil tenga uno de esos roles.
    Deja en el request: ``admin`` (perfil) y ``backend``.
    """

    def decorator(view):
        @wraps(view)
        async def _wrapped(request, *args, **kwargs):
            backend = await get_backend(request)
            navigator = Navigator()
            guard = SessionGuard(
                backend.auth,
                lambda user_id: obtener_perfil(backend.store, user_id),
                navigator,
                login_route=reverse("panel:login"),
                timeout=settings.PANEL_GUARD_TIMEOUT,
            )
            with backend.auth.on_auth_state_change(_persistir_tokens(request)):
                async with guard:
                    estado = await guard.wait()
                    if estado is not GuardState.AUTORIZADO:
                        return _redirigir_login(request, navigator.destino or reverse("panel:login"))

                    perfil = guard.profile
                    if roles and perfil.rol not in roles:
                        logger.info("%s sin permiso para %s", perfil.email, request.path)
                        messages.error(request, MSG_SIN_PERMISO)
                        return redirect("panel:dashboard")

                    request.admin = perfil
                    request.backend = backend
                    return await view(request, *args, **kwargs)

        return _wrapped

    if view_func is not None:
        return decorator(view_func)
    return decorator


def editor_required(view_func):
    return admin_required(view_func, roles=ROLES_ESCRITURA)


def superadmin_required(view_func):
    return admin_required(view_func, roles=(ROL_ADMIN,))
