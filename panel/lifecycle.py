"""Ciclo de vida genérico de formularios de creación/edición.

Una sola implementación parametrizada por ``EntityConfig`` reemplaza los
formularios por entidad:

    mount  -> (edición) carga un registro y llena el borrador
    set_campo -> edita el borrador, sin validación reactiva
    submit -> valida (primera regla que falla) -> guarda -> notifica -> navega

``BulkFormLifecycle`` aplica el mismo patrón a varias filas que comparten una
carrera padre y las inserta en una sola llamada.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import Any, Callable, Optional

from django.urls import reverse
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .errors import PanelError, StoreError, ValidationError
from .utils import extraer_youtube_id
from .validators import FORMATO_FECHAHORA, validar, validar_lote

logger = logging.getLogger(__name__)

Notify = Callable[[str, str], None]
ResolverRuta = Callable[[str, dict], str]


def _ruta_django(nombre: str, kwargs: dict) -> str:
    return reverse(nombre, kwargs=kwargs or None)


class Navigator:
    """Registra el destino pedido por el guard o el formulario (la vista redirige)."""

    def __init__(self) -> None:
        self.destino: Optional[str] = None
        self.replace = False

    def __call__(self, ruta: str, replace: bool = False) -> None:
        self.destino = ruta
        self.replace = replace


# ----------------------------------------------------------------------
# Campos
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Campo:
    """Campo editable.

    tipo: texto | entero | booleano | fecha | fechahora | imagen | youtube
    opcional: el texto vacío se guarda como None.
    cliente: sólo existe en el formulario (no va al payload).
    recortar: se aplica strip() al guardar.
    opciones: pares (valor, texto) para selectores.
    """

    nombre: str
    tipo: str = "texto"
    defecto: Any = ""
    opcional: bool = False
    cliente: bool = False
    recortar: bool = False
    etiqueta: str = ""
    opciones: tuple = ()
    multilinea: bool = False

    @property
    def label(self) -> str:
        return self.etiqueta or self.nombre.replace("_", " ").capitalize()

    def convertir(self, crudo: Any) -> Any:
        """Valor del POST -> valor del borrador."""
        if self.tipo == "booleano":
            return crudo in (True, "on", "true", "1", 1)
        if self.tipo == "entero":
            try:
                return int(str(crudo).strip())
            except (TypeError, ValueError):
                return None
        return "" if crudo is None else str(crudo)

    def desde_registro(self, valor: Any) -> Any:
        """Valor almacenado -> valor del borrador."""
        if self.tipo == "booleano":
            return bool(valor)
        if self.tipo == "entero":
            return self.defecto if valor is None else int(valor)
        if valor is None:
            return ""
        if self.tipo == "fechahora":
            dt = parse_datetime(str(valor))
            if dt is None:
                return ""
            if timezone.is_naive(dt):
                dt = timezone.make_aware(dt, dt_timezone.utc)
            return timezone.localtime(dt).strftime(FORMATO_FECHAHORA)
        if self.tipo == "fecha":
            return str(valor).split("T")[0]
        return str(valor)

    def a_payload(self, valor: Any) -> Any:
        """Valor del borrador -> valor a guardar."""
        if self.tipo in ("booleano", "entero"):
            return valor
        texto = "" if valor is None else str(valor)
        if self.recortar:
            texto = texto.strip()
        if not texto.strip():
            return None if (self.opcional or self.tipo in ("fecha", "fechahora", "imagen", "youtube")) else texto
        if self.tipo == "fechahora":
            dt = datetime.strptime(texto, FORMATO_FECHAHORA)
            aware = timezone.make_aware(dt, timezone.get_current_timezone())
            return aware.astimezone(dt_timezone.utc).isoformat()
        if self.tipo == "fecha":
            return f"{texto}T00:00:00+00:00"
        if self.tipo == "youtube":
            return extraer_youtube_id(texto)
        return texto


@dataclass(frozen=True)
class EntityConfig:
    clave: str
    tabla: str
    campos: tuple
    reglas: tuple = ()
    ruta_listado: str = ""
    padre: Optional[str] = None
    listado_por_padre: bool = False
    al_cambiar: Optional[Callable[["FormDraft", str, bool], None]] = None
    titulo: str = ""
    msg_creado: str = "Registro creado correctamente"
    msg_actualizado: str = "Registro actualizado correctamente"
    msg_error_carga: str = "Error al cargar el registro"
    msg_error_guardado: str = "Error al guardar el registro"
    msg_eliminado: str = "Registro eliminado correctamente"
    msg_error_eliminar: str = "Error al eliminar el registro"

    @property
    def nombres(self) -> list[str]:
        return [c.nombre for c in self.campos]

    def campo(self, nombre: str) -> Campo:
        for c in self.campos:
            if c.nombre == nombre:
                return c
        raise KeyError(nombre)

    def valores_iniciales(self) -> dict:
        return {c.nombre: c.defecto() if callable(c.defecto) else c.defecto for c in self.campos}

    def desde_registro(self, registro: dict) -> dict:
        return {c.nombre: c.desde_registro(registro.get(c.nombre)) for c in self.campos if not c.cliente}

    def a_payload(self, datos: dict) -> dict:
        return {c.nombre: c.a_payload(datos.get(c.nombre)) for c in self.campos if not c.cliente}


class FormDraft:
    """Copia editable de los campos de una entidad."""

    def __init__(self, datos: dict, bloqueados=()) -> None:
        self.datos = dict(datos)
        self.bloqueados = frozenset(bloqueados)
        self.cargando = False
        self.guardando = False

    def __getitem__(self, campo: str) -> Any:
        return self.datos[campo]

    def get(self, campo: str, defecto: Any = None) -> Any:
        return self.datos.get(campo, defecto)

    def __repr__(self):
        return f"<FormDraft cargando={self.cargando} guardando={self.guardando} {self.datos!r}>"


# ----------------------------------------------------------------------
# Ciclo de vida de un registro
# ----------------------------------------------------------------------
class EntityFormLifecycle:
    def __init__(
        self,
        config: EntityConfig,
        store,
        notify: Notify,
        navigate: Callable[..., None],
        *,
        identificador: Optional[str] = None,
        padres: Optional[dict] = None,
        rutas: ResolverRuta = _ruta_django,
    ) -> None:
        self.config = config
        self.store = store
        self._notify = notify
        self._navigate = navigate
        self._rutas = rutas
        self.identificador = identificador or None
        self.padres = {k: v for k, v in (padres or {}).items() if v}
        self.draft = FormDraft(config.valores_iniciales())
        self.resultado: Optional[list[dict]] = None
        self._mounted = False

    @property
    def editando(self) -> bool:
        return self.identificador is not None

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> None:
        self._mounted = True
        datos = self.config.valores_iniciales()
        datos.update(self.padres)
        self.draft = FormDraft(datos, bloqueados=self.padres.keys())
        if self.editando:
            await self._load()

    def unmount(self) -> None:
        self._mounted = False

    async def __aenter__(self) -> "EntityFormLifecycle":
        await self.mount()
        return self

    async def __aexit__(self, *exc) -> bool:
        self.unmount()
        return False

    async def _load(self) -> None:
        self.draft.cargando = True
        try:
            registro = await self.store.get_one(self.config.tabla, self.identificador)
        except StoreError as exc:
            logger.warning("No se pudo cargar %s %s: %s", self.config.tabla, self.identificador, exc)
            if self._mounted:
                self._notify("error", self.config.msg_error_carga)
            return
        if not self._mounted:
            return
        self.draft.datos.update(self.config.desde_registro(registro))
        self.draft.cargando = False

    # ------------------------------------------------------------------
    # Edición
    # ------------------------------------------------------------------
    def set_campo(self, campo: str, valor: Any) -> None:
        if campo not in self.draft.datos:
            raise KeyError(campo)
        if campo in self.draft.bloqueados:
            return
        self.draft.datos[campo] = valor
        if self.config.al_cambiar is not None:
            self.config.al_cambiar(self.draft, campo, self.editando)

    def actualizar(self, valores: dict) -> None:
        for campo, valor in valores.items():
            self.set_campo(campo, valor)

    # ------------------------------------------------------------------
    # Envío
    # ------------------------------------------------------------------
    def validar(self) -> None:
        validar(self.draft.datos, self.config.reglas)

    def payload(self) -> dict:
        return self.config.a_payload(self.draft.datos)

    async def guardar(self, payload: dict) -> None:
        if self.editando:
            await self.store.update(self.config.tabla, self.identificador, payload)
        else:
            self.resultado = await self.store.insert(self.config.tabla, payload)

    def mensaje_exito(self) -> str:
        return self.config.msg_actualizado if self.editando else self.config.msg_creado

    def ruta_exito(self) -> str:
        kwargs = {}
        if self.config.listado_por_padre and self.config.padre:
            kwargs[self.config.padre] = self.draft.get(self.config.padre)
        return self._rutas(self.config.ruta_listado, kwargs)

    async def submit(self) -> bool:
        """True si el registro se guardó. Nunca deja ``guardando`` en True."""
        draft = self.draft
        if not self._mounted or draft.cargando or draft.guardando:
            return False
        try:
            self.validar()
        except ValidationError as exc:
            self._notify("error", exc.message)
            return False

        draft.guardando = True
        try:
            await self.guardar(self.payload())
        except PanelError as exc:
            logger.warning("Error guardando %s: %s", self.config.tabla, exc)
            if self._mounted:
                self._notify("error", exc.message or self.config.msg_error_guardado)
            return False
        finally:
            draft.guardando = False

        if self._mounted:
            self._notify("success", self.mensaje_exito())
            self._navigate(self.ruta_exito())
        return True


# ----------------------------------------------------------------------
# Variante masiva
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class BulkConfig:
    clave: str
    tabla: str
    campos: tuple
    reglas: Callable[[dict], list] = lambda padre: []
    fila_valida: Callable[[dict], bool] = lambda fila: True
    padre: str = "carrera_id"
    tabla_padre: str = "carreras"
    ruta_listado: str = ""
    titulo: str = ""
    msg_exito: Callable[[int], str] = lambda n: f"{n} registro(s) agregado(s) correctamente"
    msg_vacio: str = "No hay registros válidos para guardar"
    msg_minimo: str = "Debe haber al menos un registro"
    msg_error_carga: str = "Error al cargar la carrera"
    msg_error_guardado: str = "Error al guardar los registros"
    msg_sin_padre: str = "No hay carrera seleccionada"
    extra: dict = field(default_factory=dict)

    @property
    def nombres(self) -> list[str]:
        return [c.nombre for c in self.campos]

    def fila_vacia(self) -> dict:
        return {c.nombre: c.defecto() if callable(c.defecto) else c.defecto for c in self.campos}


class BulkFormLifecycle:
    def __init__(
        self,
        config: BulkConfig,
        store,
        notify: Notify,
        navigate: Callable[..., None],
        *,
        padre_id: Optional[str],
        rutas: ResolverRuta = _ruta_django,
    ) -> None:
        self.config = config
        self.store = store
        self._notify = notify
        self._navigate = navigate
        self._rutas = rutas
        self.padre_id = padre_id or None
        self.padre: Optional[dict] = None
        self.filas: list[FormDraft] = []
        self.cargando = False
        self.guardando = False
        self._mounted = False

    def _ruta_listado(self) -> str:
        return self._rutas(self.config.ruta_listado, {self.config.padre: self.padre_id})

    async def mount(self) -> None:
        self._mounted = True
        self.filas = [FormDraft(self.config.fila_vacia())]
        if not self.padre_id:
            return
        self.cargando = True
        try:
            self.padre = await self.store.get_one(self.config.tabla_padre, self.padre_id)
        except StoreError as exc:
            logger.warning("No se pudo cargar la carrera %s: %s", self.padre_id, exc)
            if self._mounted:
                self._notify("error", self.config.msg_error_carga)
                self._navigate(self._ruta_listado())
        finally:
            if self._mounted:
                self.cargando = False

    def unmount(self) -> None:
        self._mounted = False

    async def __aenter__(self) -> "BulkFormLifecycle":
        await self.mount()
        return self

    async def __aexit__(self, *exc) -> bool:
        self.unmount()
        return False

    def cargar_filas(self, filas: list[dict]) -> None:
        """Reemplaza las filas (por ejemplo, las que llegan en el POST)."""
        if filas:
            base = self.config.fila_vacia()
            self.filas = [FormDraft({**base, **fila}) for fila in filas]

    def agregar_fila(self) -> None:
        self.filas.append(FormDraft(self.config.fila_vacia()))

    def quitar_fila(self, indice: int) -> bool:
        if not 0 <= indice < len(self.filas):
            logger.debug("Fila inexistente para quitar: %s", indice)
            return False
        if len(self.filas) <= 1:
            self._notify("warning", self.config.msg_minimo)
            return False
        del self.filas[indice]
        return True

    def set_campo(self, indice: int, campo: str, valor: Any) -> None:
        fila = self.filas[indice]
        if campo not in fila.datos:
            raise KeyError(campo)
        fila.datos[campo] = valor

    def _a_fila(self, datos: dict) -> dict:
        fila = {c.nombre: c.a_payload(datos.get(c.nombre)) for c in self.config.campos if not c.cliente}
        fila[self.config.padre] = self.padre_id
        return fila

    async def submit(self) -> bool:
        if not self._mounted or self.cargando or self.guardando:
            return False
        if not self.padre_id or self.padre is None:
            self._notify("error", self.config.msg_sin_padre)
            return False

        datos = [f.datos for f in self.filas]
        try:
            validar_lote(datos, self.config.reglas(self.padre))
        except ValidationError as exc:
            self._notify("error", exc.message)
            return False

        filas = [self._a_fila(d) for d in datos if self.config.fila_valida(d)]
        if not filas:
            self._notify("error", self.config.msg_vacio)
            return False

        self.guardando = True
        try:
            await self.store.insert(self.config.tabla, filas)
        except PanelError as exc:
            logger.warning("Error en inserción masiva de %s: %s", self.config.tabla, exc)
            if self._mounted:
                self._notify("error", exc.message or self.config.msg_error_guardado)
            return False
        finally:
            self.guardando = False

        if self._mounted:
            self._notify("success", self.config.msg_exito(len(filas)))
            self._navigate(self._ruta_listado())
        return True


__all__ = [
    "Campo",
    "EntityConfig",
    "FormDraft",
    "EntityFormLifecycle",
    "BulkConfig",
    "BulkFormLifecycle",
    "Navigator",
]
