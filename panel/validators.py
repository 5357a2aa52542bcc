"""Reglas de validación de formularios.

Cada regla es un callable ``datos -> mensaje | None``. ``validar`` aplica una
secuencia ordenada y se detiene en la primera regla que falla.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from .errors import ValidationError
from .utils import extraer_youtube_id

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# lo que envían los inputs date y datetime-local
FORMATO_FECHA = "%Y-%m-%d"
FORMATO_FECHAHORA = "%Y-%m-%dT%H:%M"


@dataclass(frozen=True)
class Regla:
    campo: Optional[str]
    mensaje: str
    falla: Callable[[dict], bool]

    def __call__(self, datos: dict) -> Optional[str]:
        return self.mensaje if self.falla(datos) else None


def _texto(datos: dict, campo: str) -> str:
    valor = datos.get(campo)
    return "" if valor is None else str(valor)


def requerido(campo: str, mensaje: str) -> Regla:
    return Regla(campo, mensaje, lambda d: not _texto(d, campo).strip())


def longitud_minima(campo: str, minimo: int, mensaje: str) -> Regla:
    """Vacío (tras strip) o más corto que ``minimo``."""
    return Regla(
        campo,
        mensaje,
        lambda d: not _texto(d, campo).strip() or len(_texto(d, campo)) < minimo,
    )


def longitud_minima_opcional(campo: str, minimo: int, mensaje: str) -> Regla:
    """Sólo se verifica cuando el campo trae valor."""
    return Regla(campo, mensaje, lambda d: bool(_texto(d, campo)) and len(_texto(d, campo)) < minimo)


def rango(campo: str, minimo, maximo, mensaje: str) -> Regla:
    def falla(d):
        valor = d.get(campo)
        return valor is None or valor < minimo or valor > maximo

    return Regla(campo, mensaje, falla)


def no_negativos(campos: Sequence[str], mensaje: str) -> Regla:
    return Regla(
        campos[0] if campos else None,
        mensaje,
        lambda d: any(d.get(c) is None or d.get(c) < 0 for c in campos),
    )


def _formato_invalido(texto: str, formato: str) -> bool:
    try:
        datetime.strptime(texto, formato)
    except ValueError:
        return True
    return False


def formato_fecha(campos: Sequence[str], mensaje: str, formato: str = FORMATO_FECHA) -> Regla:
    """Los campos con valor deben respetar ``formato``; los vacíos se dejan a ``requerido``."""

    def falla(d):
        return any(
            _texto(d, c).strip() and _formato_invalido(_texto(d, c).strip(), formato) for c in campos
        )

    return Regla(campos[0] if campos else None, mensaje, falla)


def formato_fecha_hora(campos: Sequence[str], mensaje: str) -> Regla:
    return formato_fecha(campos, mensaje, FORMATO_FECHAHORA)


def fecha_no_anterior(campo_fin: str, campo_inicio: str, mensaje: str) -> Regla:
    """``fin`` (si existe) no puede ser anterior a ``inicio``; ambos en el mismo formato ISO local."""
    return Regla(
        campo_fin,
        mensaje,
        lambda d: bool(d.get(campo_fin)) and _texto(d, campo_fin) < _texto(d, campo_inicio),
    )


def youtube(campo: str, mensaje: str, opcional: bool = False) -> Regla:
    def falla(d):
        valor = _texto(d, campo)
        if opcional and not valor.strip():
            return False
        return extraer_youtube_id(valor) is None

    return Regla(campo, mensaje, falla)


def email(campo: str, mensaje: str) -> Regla:
    return Regla(campo, mensaje, lambda d: not _EMAIL.match(_texto(d, campo).strip()))


def iguales(campo: str, otro: str, mensaje: str) -> Regla:
    return Regla(campo, mensaje, lambda d: _texto(d, campo) != _texto(d, otro))


def validar(datos: dict, reglas: Iterable[Callable[[dict], Optional[str]]]) -> None:
    """Lanza ValidationError con la primera regla que falla."""
    for regla in reglas:
        mensaje = regla(datos)
        if mensaje:
            raise ValidationError(mensaje, field=getattr(regla, "campo", None))


# ----------------------------------------------------------------------
# Reglas sobre lotes (pantallas "agregar masivo")
# ----------------------------------------------------------------------
def cada_fila(predicado: Callable[[dict], bool], mensaje: str) -> Callable[[list[dict]], Optional[str]]:
    """Falla el lote completo si alguna fila no cumple ``predicado``."""

    def regla(filas: list[dict]) -> Optional[str]:
        return mensaje if any(not predicado(f) for f in filas) else None

    return regla


def validar_lote(filas: list[dict], reglas) -> None:
    for regla in reglas:
        mensaje = regla(filas)
        if mensaje:
            raise ValidationError(mensaje)
