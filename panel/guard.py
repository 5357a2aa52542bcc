"""Guard de sesión del área administrativa.

Máquina de estados por montaje::

    INICIALIZANDO --(sesión + perfil activo)--> AUTORIZADO
    INICIALIZANDO --(sin sesión / sin perfil / inactivo / error / timeout)--> NO_AUTORIZADO
    AUTORIZADO    --(SIGNED_OUT)--> NO_AUTORIZADO

La verificación inicial y la suscripción a notificaciones corren en paralelo
desde ``mount``. Toda actualización de estado o redirección es un no-op una
vez desmontado. ``unmount`` cancela la suscripción y el timeout; usar el guard
como ``async with`` garantiza la liberación en todos los caminos.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional

from .auth import AuthEvent, Session, Subscription
from .models import PerfilAdministrador

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

ProfileLookup = Callable[[str], Awaitable[Optional[PerfilAdministrador]]]
Navigate = Callable[..., None]


class GuardState(str, enum.Enum):
    INICIALIZANDO = "inicializando"
    AUTORIZADO = "autorizado"
    NO_AUTORIZADO = "no_autorizado"


class SessionGuard:
    def __init__(
        self,
        auth,
        profile_lookup: ProfileLookup,
        navigate: Navigate,
        *,
        login_route: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._auth = auth
        self._lookup = profile_lookup
        self._navigate = navigate
        self._login_route = login_route
        self._timeout = timeout

        self.state = GuardState.INICIALIZANDO
        self.profile: Optional[PerfilAdministrador] = None
        self.session: Optional[Session] = None

        self._mounted = False
        self._resolved: Optional[asyncio.Event] = None
        self._subscription: Optional[Subscription] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._check_task: Optional[asyncio.Task] = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def authorized(self) -> bool:
        return self._mounted and self.state is GuardState.AUTORIZADO

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------
    async def mount(self) -> None:
        if self._mounted:
            raise RuntimeError("El guard ya está montado")
        loop = asyncio.get_running_loop()
        self._mounted = True
        self._resolved = asyncio.Event()
        self._timeout_handle = loop.call_later(self._timeout, self._on_timeout)
        try:
            self._subscription = self._auth.on_auth_state_change(self._on_auth_event)
        except Exception:
            logger.exception("No se pudo suscribir a los cambios de sesión")
            self._deny("suscripción fallida")
            return
        self._check_task = loop.create_task(self._initial_check())

    async def wait(self) -> GuardState:
        """Espera a que el guard salga de INICIALIZANDO (o sea desmontado)."""
        if self._resolved is None:
            raise RuntimeError("El guard no está montado")
        await self._resolved.wait()
        return self.state

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._cancel_timeout()
        if self._resolved is not None:
            self._resolved.set()

    async def __aenter__(self) -> "SessionGuard":
        await self.mount()
        return self

    async def __aexit__(self, *exc) -> bool:
        self.unmount()
        return False

    # ------------------------------------------------------------------
    # Verificación y eventos
    # ------------------------------------------------------------------
    async def _initial_check(self) -> None:
        try:
            session = await self._auth.get_session()
            if session is None:
                self._deny("sin sesión")
                return
            self.session = session

            profile = await self._lookup(session.user_id)
            if profile is None or not profile.activo:
                await self._sign_out()
                self._deny("perfil inexistente" if profile is None else "perfil inactivo")
                return
            self._grant(profile)
        except Exception:
            logger.exception("Fallo al verificar la sesión; se deniega el acceso")
            self._deny("error de verificación")

    async def _sign_out(self) -> None:
        try:
            await self._auth.sign_out()
        except Exception:
            logger.warning("No se pudo cerrar la sesión en el proveedor", exc_info=True)

    def _on_auth_event(self, event: str, session: Optional[Session]) -> None:
        if event != AuthEvent.SIGNED_OUT:
            return
        self._deny("sesión cerrada")

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if self.state is GuardState.INICIALIZANDO:
            logger.warning("La verificación de sesión superó %.1fs", self._timeout)
            self._deny("timeout")

    # ------------------------------------------------------------------
    # Transiciones
    # ------------------------------------------------------------------
    def _grant(self, profile: PerfilAdministrador) -> None:
        if not self._mounted or self.state is not GuardState.INICIALIZANDO:
            return
        self.profile = profile
        self.state = GuardState.AUTORIZADO
        self._resolve()

    def _deny(self, motivo: str) -> None:
        if not self._mounted or self.state is GuardState.NO_AUTORIZADO:
            return
        logger.info("Acceso denegado al panel: %s", motivo)
        self.state = GuardState.NO_AUTORIZADO
        self.profile = None
        self._resolve()
        self._navigate(self._login_route, replace=True)

    def _resolve(self) -> None:
        self._cancel_timeout()
        if self._resolved is not None:
            self._resolved.set()

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None


__all__ = ["GuardState", "SessionGuard", "DEFAULT_TIMEOUT"]
