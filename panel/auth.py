"""Proveedor de autenticación sobre Supabase Auth.

La sesión es un valor explícito (``Session``) que se inyecta al proveedor;
no hay estado global implícito. Las notificaciones de cambio de sesión se
entregan a través de un ``Subscription`` que debe cancelarse explícitamente.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx
from supabase import AsyncClient, AuthError as SupabaseAuthError

from .errors import AuthError

logger = logging.getLogger(__name__)


class AuthEvent:
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


@dataclass(frozen=True)
class Session:
    """Identidad autenticada; su vida útil la controla el proveedor."""

    access_token: str
    refresh_token: str
    user_id: str
    email: str = ""
    expires_at: Optional[int] = None

    @classmethod
    def from_supabase(cls, session) -> "Session":
        user = getattr(session, "user", None)
        return cls(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            user_id=str(user.id) if user else "",
            email=(getattr(user, "email", None) or "") if user else "",
            expires_at=getattr(session, "expires_at", None),
        )

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "user_id": self.user_id,
            "email": self.email,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Session"]:
        if not data or not data.get("access_token") or not data.get("refresh_token"):
            return None
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            user_id=data.get("user_id") or "",
            email=data.get("email") or "",
            expires_at=data.get("expires_at"),
        )


AuthCallback = Callable[[str, Optional[Session]], None]


class Subscription:
    """Handle de suscripción; ``unsubscribe`` es idempotente."""

    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._unsubscribe()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.unsubscribe()
        return False


def _auth_error(exc: Exception) -> AuthError:
    """Traduce errores de Supabase Auth al AuthError etiquetado."""
    if isinstance(exc, httpx.HTTPError):
        return AuthError("No se pudo contactar al servicio de autenticación", kind="unknown")

    message = getattr(exc, "message", None) or str(exc)
    code = getattr(exc, "code", None) or ""
    status = getattr(exc, "status", None)

    if "Invalid login credentials" in message or "invalid_grant" in message or code == "invalid_credentials":
        kind = "invalid_credentials"
    elif "Email not confirmed" in message or code == "email_not_confirmed":
        kind = "email_not_confirmed"
    elif "User not found" in message or code == "user_not_found":
        kind = "user_not_found"
    elif status == 400:
        kind = "bad_request"
    else:
        kind = "unknown"
    return AuthError(message, kind=kind, status=status)


class SupabaseAuthProvider:
    """Operaciones de Supabase Auth usadas por el guard, el login y la gestión de administradores."""

    def __init__(
        self,
        client: AsyncClient,
        session: Optional[Session] = None,
        admin_client_factory: Optional[Callable[[], Awaitable[AsyncClient]]] = None,
    ) -> None:
        self._client = client
        self._session = session
        self._admin_client_factory = admin_client_factory
        self._admin_client: Optional[AsyncClient] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    # ------------------------------------------------------------------
    # Sesión
    # ------------------------------------------------------------------
    async def sign_in(self, email: str, password: str) -> Session:
        try:
            response = await self._client.auth.sign_in_with_password({"email": email, "password": password})
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        if response.session is None or response.user is None:
            raise AuthError(kind="unknown")
        self._session = Session.from_supabase(response.session)
        return self._session

    async def get_session(self) -> Optional[Session]:
        """Restaura la sesión inyectada en el cliente y la devuelve (refrescada si hizo falta)."""
        if self._session is None:
            return None
        try:
            response = await self._client.auth.set_session(
                self._session.access_token, self._session.refresh_token
            )
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        if response.session is None:
            self._session = None
            return None
        self._session = Session.from_supabase(response.session)
        return self._session

    async def sign_out(self) -> None:
        try:
            await self._client.auth.sign_out()
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        finally:
            self._session = None

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        def _relay(event, session):
            callback(str(event), Session.from_supabase(session) if session else None)

        inner = self._client.auth.on_auth_state_change(_relay)
        return Subscription(inner.unsubscribe)

    # ------------------------------------------------------------------
    # Administración de identidades (requiere service role)
    # ------------------------------------------------------------------
    async def _admin(self):
        if self._admin_client is None:
            if self._admin_client_factory is None:
                raise AuthError(
                    "La gestión de usuarios requiere SUPABASE_SERVICE_ROLE_KEY",
                    kind="not_configured",
                )
            self._admin_client = await self._admin_client_factory()
        return self._admin_client.auth.admin

    async def create_identity(self, email: str, password: str) -> str:
        admin = await self._admin()
        try:
            response = await admin.create_user({"email": email, "password": password, "email_confirm": True})
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        if response.user is None:
            raise AuthError("No se pudo crear el usuario")
        return str(response.user.id)

    async def delete_identity(self, identity_id: str) -> None:
        admin = await self._admin()
        try:
            await admin.delete_user(identity_id)
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc

    async def update_identity_password(self, identity_id: str, password: str) -> None:
        admin = await self._admin()
        try:
            await admin.update_user_by_id(identity_id, {"password": password})
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc


__all__ = ["AuthEvent", "Session", "Subscription", "SupabaseAuthProvider"]
