"""Gestión de administradores del panel.

Un administrador son dos registros en sistemas distintos: la identidad en
Supabase Auth y el perfil en ``perfiles_administradores`` con el mismo id.
La creación provisiona la identidad y luego inserta el perfil; si el perfil
falla, la identidad se elimina antes de propagar el error.
"""

from __future__ import annotations

import logging
from typing import Optional

from .entities import ADMINISTRADOR, REGLAS_EDICION_ADMINISTRADOR
from .errors import AuthError, OrphanIdentityError, StoreError, ValidationError
from .lifecycle import EntityFormLifecycle
from .models import ROL_EDITOR, ROLES, TABLA_ADMINISTRADORES, PerfilAdministrador
from .validators import validar

logger = logging.getLogger(__name__)

MSG_PASSWORD_FALLIDA = "Perfil actualizado pero hubo un error al cambiar la contraseña"
MSG_PROPIA_CUENTA = "No puedes cambiar tu propio rol ni desactivar tu cuenta"
MSG_ELIMINAR_PROPIA = "No puedes eliminar tu propia cuenta"
MSG_ROL_INVALIDO = "Rol inválido"


async def crear_administrador(
    store,
    auth,
    *,
    email: str,
    password: str,
    nombre_completo: str,
    rol: str = ROL_EDITOR,
    activo: bool = True,
) -> PerfilAdministrador:
    """Identidad + perfil. Si el perfil falla se elimina la identidad recién creada.

    Si además falla esa eliminación se lanza OrphanIdentityError con el id de la
    identidad, que queda para limpieza manual.
    """
    identity_id = await auth.create_identity(email, password)
    fila = {
        "id": identity_id,
        "nombre_completo": nombre_completo,
        "email": email,
        "rol": rol,
        "activo": activo,
    }
    try:
        filas = await store.insert(TABLA_ADMINISTRADORES, fila)
    except StoreError as exc:
        logger.warning("No se pudo crear el perfil de %s; revirtiendo identidad %s", email, identity_id)
        try:
            await auth.delete_identity(identity_id)
        except AuthError as rollback_exc:
            logger.error(
                "Identidad huérfana %s (%s): el perfil falló y no se pudo eliminar la identidad: %s",
                identity_id,
                email,
                rollback_exc,
            )
            raise OrphanIdentityError(
                exc.message or "Error al guardar el administrador", identity_id, code=exc.code
            ) from rollback_exc
        raise

    logger.info("Administrador %s creado con rol %s", email, rol)
    return PerfilAdministrador.from_row(filas[0] if filas else fila)


async def actualizar_administrador(
    store,
    auth,
    admin_id: str,
    *,
    nombre_completo: str,
    rol: str,
    activo: bool,
    nueva_password: Optional[str] = None,
) -> bool:
    """Actualiza el perfil y, si se pidió, la contraseña.

    Devuelve False cuando el perfil se guardó pero el cambio de contraseña falló.
    """
    await store.update(
        TABLA_ADMINISTRADORES,
        admin_id,
        {"nombre_completo": nombre_completo, "rol": rol, "activo": activo},
    )
    if not nueva_password:
        return True
    try:
        await auth.update_identity_password(admin_id, nueva_password)
    except AuthError as exc:
        logger.warning("No se pudo cambiar la contraseña de %s: %s", admin_id, exc)
        return False
    return True


async def eliminar_administrador(store, auth, admin_id: str, *, actor_id: Optional[str] = None) -> None:
    """Elimina la identidad (el perfil cae por cascada); si falla, elimina sólo el perfil."""
    if actor_id and admin_id == actor_id:
        raise ValidationError(MSG_ELIMINAR_PROPIA)
    try:
        await auth.delete_identity(admin_id)
    except AuthError as exc:
        logger.warning("No se pudo eliminar la identidad %s (%s); se elimina el perfil", admin_id, exc)
        await store.delete(TABLA_ADMINISTRADORES, admin_id)


class AdministradorFormLifecycle(EntityFormLifecycle):
    """Formulario de administradores: reglas distintas en creación y edición."""

    def __init__(self, store, auth, notify, navigate, *, identificador=None, actor_id=None, **kwargs):
        super().__init__(ADMINISTRADOR, store, notify, navigate, identificador=identificador, **kwargs)
        self.auth = auth
        self.actor_id = actor_id
        self.original: dict = {}

    @property
    def es_propia_cuenta(self) -> bool:
        return self.editando and self.identificador == self.actor_id

    async def _load(self) -> None:
        await super()._load()
        if not self.draft.cargando:
            self.original = dict(self.draft.datos)

    def validar(self) -> None:
        datos = self.draft.datos
        if self.editando:
            validar(datos, REGLAS_EDICION_ADMINISTRADOR)
            if self.es_propia_cuenta and (
                datos.get("rol") != self.original.get("rol") or not datos.get("activo")
            ):
                raise ValidationError(MSG_PROPIA_CUENTA)
        else:
            validar(datos, self.config.reglas)
        if datos.get("rol") not in ROLES:
            raise ValidationError(MSG_ROL_INVALIDO, field="rol")

    async def guardar(self, payload: dict) -> None:
        datos = self.draft.datos
        if self.editando:
            password_ok = await actualizar_administrador(
                self.store,
                self.auth,
                self.identificador,
                nombre_completo=payload["nombre_completo"],
                rol=payload["rol"],
                activo=payload["activo"],
                nueva_password=datos.get("nueva_password") or None,
            )
            if not password_ok and self._mounted:
                self._notify("warning", MSG_PASSWORD_FALLIDA)
        else:
            perfil = await crear_administrador(
                self.store,
                self.auth,
                email=payload["email"],
                password=datos.get("password") or "",
                nombre_completo=payload["nombre_completo"],
                rol=payload["rol"],
                activo=payload["activo"],
            )
            self.resultado = [{"id": perfil.id}]


__all__ = [
    "crear_administrador",
    "actualizar_administrador",
    "eliminar_administrador",
    "AdministradorFormLifecycle",
]
