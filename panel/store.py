"""Almacén de datos sobre la API REST de Supabase (PostgREST).

Operaciones puntuales: selección con filtros/orden, obtención por id,
inserción (una o varias filas), actualización y borrado por id, y la única
RPC de agregación del panel. Los errores del cliente se convierten en
``StoreError``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Union

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from .errors import StoreError, store_error_from

logger = logging.getLogger(__name__)

# Operadores aceptados en filtros: {"columna": valor} (eq) o {"columna": ("gte", valor)}
OPERADORES = ("eq", "neq", "gt", "gte", "lt", "lte")

Orden = Iterable[tuple[str, bool]]  # (columna, ascendente)


def _aplicar_filtros(query, filtros: Optional[dict]):
    for columna, valor in (filtros or {}).items():
        if isinstance(valor, tuple):
            op, valor = valor
            if op not in OPERADORES:
                raise ValueError(f"Operador no soportado: {op}")
        else:
            op = "eq"
        query = getattr(query, op)(columna, valor)
    return query


class SupabaseStore:
    """Acceso por nombre de tabla a las filas del sitio."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def _run(self, query, contexto: str):
        try:
            return await query.execute()
        except APIError as exc:
            logger.warning("Error de Supabase en %s: %s (code=%s)", contexto, exc.message, exc.code)
            raise store_error_from(exc) from exc
        except httpx.HTTPError as exc:
            logger.warning("Error de red en %s: %s", contexto, exc)
            raise StoreError("No se pudo contactar a la base de datos") from exc

    async def select(
        self,
        tabla: str,
        *,
        columnas: str = "*",
        filtros: Optional[dict] = None,
        orden: Optional[Orden] = None,
        limite: Optional[int] = None,
    ) -> list[dict]:
        query = _aplicar_filtros(self._client.table(tabla).select(columnas), filtros)
        for columna, ascendente in orden or ():
            query = query.order(columna, desc=not ascendente)
        if limite is not None:
            query = query.limit(limite)
        response = await self._run(query, f"select {tabla}")
        return list(response.data or [])

    async def get_one(self, tabla: str, registro_id: str, *, columnas: str = "*") -> dict:
        """Devuelve exactamente un registro o lanza StoreError(kind='not_found')."""
        query = self._client.table(tabla).select(columnas).eq("id", registro_id).limit(1)
        response = await self._run(query, f"get {tabla}")
        if not response.data:
            raise StoreError("Registro no encontrado", kind="not_found", code="PGRST116")
        return response.data[0]

    async def insert(self, tabla: str, filas: Union[dict, list[dict]]) -> list[dict]:
        response = await self._run(self._client.table(tabla).insert(filas), f"insert {tabla}")
        return list(response.data or [])

    async def update(self, tabla: str, registro_id: str, cambios: dict) -> None:
        query = self._client.table(tabla).update(cambios).eq("id", registro_id)
        await self._run(query, f"update {tabla}")

    async def delete(self, tabla: str, registro_id: str) -> None:
        query = self._client.table(tabla).delete().eq("id", registro_id)
        await self._run(query, f"delete {tabla}")

    async def rpc(self, funcion: str, params: Optional[dict] = None) -> Any:
        response = await self._run(self._client.rpc(funcion, params or {}), f"rpc {funcion}")
        return response.data


__all__ = ["SupabaseStore", "OPERADORES"]
