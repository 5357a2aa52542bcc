"""Operaciones del panel que combinan autenticación y almacén."""

from __future__ import annotations

import logging
from typing import Optional

from django.utils import timezone

from .auth import Session
from .errors import AuthError, StoreError
from .models import (
    RPC_DESGLOSE,
    TABLA_ADMINISTRADORES,
    TABLA_CARRERAS,
    TABLA_CONFIGURACION,
    TABLA_DOCENTES,
    TABLA_EVENTOS,
    DesgloseCarrera,
    PerfilAdministrador,
)
from .signals import administrador_autenticado

logger = logging.getLogger(__name__)

MSG_SIN_PERMISOS = "No tienes permisos para acceder al panel administrativo"
MSG_DESACTIVADO = "Tu cuenta está desactivada. Contacta al administrador"
MSG_LOGIN_GENERICO = "Error al iniciar sesión. Intenta nuevamente"

_MENSAJES_LOGIN = {
    "invalid_credentials": "Correo electrónico o contraseña incorrectos",
    "email_not_confirmed": "Por favor, confirma tu correo electrónico primero",
    "user_not_found": "Usuario no encontrado. Verifica tu correo electrónico",
    "bad_request": "Error en la solicitud. Verifica tus credenciales o contacta al administrador",
    "no_profile": MSG_SIN_PERMISOS,
    "inactive": MSG_DESACTIVADO,
}


def mensaje_login(exc: AuthError) -> str:
    """Texto para el usuario según el tipo de falla de autenticación."""
    return _MENSAJES_LOGIN.get(exc.kind) or exc.message or MSG_LOGIN_GENERICO


async def obtener_perfil(store, user_id: str) -> Optional[PerfilAdministrador]:
    """Perfil de administrador por id de identidad, o None si no existe."""
    filas = await store.select(TABLA_ADMINISTRADORES, filtros={"id": user_id}, limite=1)
    return PerfilAdministrador.from_row(filas[0]) if filas else None


async def _cerrar_sesion(auth) -> None:
    try:
        await auth.sign_out()
    except AuthError as exc:
        logger.warning("No se pudo cerrar la sesión rechazada: %s", exc)


async def autenticar_administrador(auth, store, email: str, password: str) -> tuple[Session, PerfilAdministrador]:
    """Inicia sesión y exige un perfil activo.

    Lanza AuthError; ``kind`` es 'no_profile' o 'inactive' cuando la identidad
    es válida pero no puede entrar al panel (la sesión ya fue cerrada).
    """
    session = await auth.sign_in(email.strip().lower(), password)
    try:
        perfil = await obtener_perfil(store, session.user_id)
    except StoreError:
        await _cerrar_sesion(auth)
        raise AuthError(MSG_LOGIN_GENERICO, kind="unknown")

    if perfil is None:
        await _cerrar_sesion(auth)
        raise AuthError(MSG_SIN_PERMISOS, kind="no_profile")
    if not perfil.activo:
        await _cerrar_sesion(auth)
        raise AuthError(MSG_DESACTIVADO, kind="inactive")

    await administrador_autenticado.asend(sender=autenticar_administrador, perfil=perfil, store=store)
    logger.info("Inicio de sesión de %s", perfil.email)
    return session, perfil


async def contar(store, tabla: str, filtros: Optional[dict] = None) -> int:
    """Cantidad de filas; 0 si la consulta falla."""
    try:
        filas = await store.select(tabla, columnas="id", filtros=filtros)
    except StoreError as exc:
        logger.warning("No se pudo contar %s: %s", tabla, exc)
        return 0
    return len(filas)


async def estadisticas_dashboard(store) -> dict:
    ahora = timezone.now().isoformat()
    return {
        "carreras": await contar(store, TABLA_CARRERAS, {"activa": True}),
        "docentes": await contar(store, TABLA_DOCENTES, {"activo": True}),
        "eventos": await contar(store, TABLA_EVENTOS, {"activo": True, "fecha_inicio": ("gte", ahora)}),
    }


async def calcular_desglose(store, carrera_id: str) -> Optional[DesgloseCarrera]:
    """Desglose del plan de estudios; None si la RPC falla (no es crítico)."""
    try:
        datos = await store.rpc(RPC_DESGLOSE, {"p_carrera_id": carrera_id})
    except StoreError as exc:
        logger.warning("No se pudo calcular el desglose de %s: %s", carrera_id, exc)
        return None
    if isinstance(datos, list):
        datos = datos[0] if datos else None
    return DesgloseCarrera.from_row(datos) if datos else None


async def listar_carreras(store) -> list[dict]:
    """Carreras para selectores: activas primero, luego por nombre."""
    return await store.select(
        TABLA_CARRERAS,
        columnas="id, nombre, semestres, activa",
        orden=[("activa", False), ("nombre", True)],
    )


async def obtener_configuracion(store) -> Optional[dict]:
    """Registro activo de configuración del sitio (único)."""
    filas = await store.select(TABLA_CONFIGURACION, filtros={"activo": True}, limite=1)
    return filas[0] if filas else None


__all__ = [
    "mensaje_login",
    "obtener_perfil",
    "autenticar_administrador",
    "estadisticas_dashboard",
    "calcular_desglose",
    "listar_carreras",
    "obtener_configuracion",
]
