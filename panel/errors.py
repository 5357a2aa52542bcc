"""
Errores etiquetados del panel y mapeo de errores de Supabase.

Cada categoría de falla tiene su propio tipo (AuthError, ValidationError,
StoreError) para que el código que llama pueda ramificar por ``kind`` en vez
de interpretar mensajes.
"""

from typing import Optional


class PanelError(Exception):
    """Base de todos los errores del panel."""

    default_message = "Ocurrió un error inesperado"

    def __init__(self, message: Optional[str] = None, kind: str = "other"):
        # message queda en None cuando el origen no trae texto; str() usa el genérico
        self.message = message
        self.kind = kind
        super().__init__(message or self.default_message)


class AuthError(PanelError):
    """Falla del proveedor de autenticación.

    kind: invalid_credentials | email_not_confirmed | user_not_found |
          bad_request | not_configured | no_profile | inactive | unknown
    """

    default_message = "Error al iniciar sesión. Intenta nuevamente"

    def __init__(self, message: Optional[str] = None, kind: str = "unknown", status: Optional[int] = None):
        super().__init__(message, kind)
        self.status = status


class ValidationError(PanelError):
    """Regla de formulario violada antes de cualquier llamada de red."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, kind="validation")
        self.field = field


class StoreError(PanelError):
    """Falla del almacén de datos (red o servidor).

    kind: unique | fk | not_null | check | not_found | other
    """

    default_message = "Error al comunicarse con la base de datos"

    def __init__(self, message: Optional[str] = None, kind: str = "other", code: Optional[str] = None):
        super().__init__(message, kind)
        self.code = code


class OrphanIdentityError(StoreError):
    """El perfil no se pudo crear y tampoco se pudo revertir la identidad."""

    def __init__(self, message: str, identity_id: str, code: Optional[str] = None):
        super().__init__(message, kind="orphan_identity", code=code)
        self.identity_id = identity_id


# SQLSTATE de PostgreSQL y códigos propios de PostgREST
_SQLSTATE_KINDS = {
    "23505": "unique",
    "23503": "fk",
    "23502": "not_null",
    "23514": "check",
    "PGRST116": "not_found",
}


def _get_code(exc: Exception) -> Optional[str]:
    """Obtiene el código (SQLSTATE o PGRSTxxx) si está disponible."""
    for obj in (exc, getattr(exc, "__cause__", None), getattr(exc, "__context__", None)):
        if obj is None:
            continue
        code = getattr(obj, "code", None) or getattr(obj, "sqlstate", None)
        if code:
            return str(code)
    return None


def map_store_error(exc: Exception) -> str:
    """
    Retorna una etiqueta corta:
      'unique'    -> violación de unicidad (23505)
      'fk'        -> violación de llave foránea (23503)
      'not_null'  -> NOT NULL (23502)
      'check'     -> check constraint (23514)
      'not_found' -> .single() sin filas (PGRST116)
      'other'     -> cualquier otro
    """
    return _SQLSTATE_KINDS.get(_get_code(exc) or "", "other")


def store_error_from(exc: Exception, fallback: Optional[str] = None) -> StoreError:
    """Convierte una excepción del cliente en StoreError conservando el mensaje del almacén."""
    message = getattr(exc, "message", None) or str(exc) or fallback
    return StoreError(message, kind=map_store_error(exc), code=_get_code(exc))


__all__ = [
    "PanelError",
    "AuthError",
    "ValidationError",
    "StoreError",
    "OrphanIdentityError",
    "map_store_error",
    "store_error_from",
]
