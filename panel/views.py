from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.contrib import messages
from django.http import Http404, HttpRequest, HttpResponse
from django.shortcuts import redirect, render
from django.urls import reverse
from django.utils.http import url_has_allowed_host_and_scheme
from django.views.decorators.cache import never_cache
from django.views.decorators.http import require_http_methods, require_POST

from . import entities, services
from .administradores import AdministradorFormLifecycle, eliminar_administrador
from .backends import get_backend, guardar_sesion, sesion_guardada
from .decorators import admin_required, editor_required, superadmin_required
from .errors import AuthError, PanelError, StoreError, ValidationError
from .lifecycle import BulkFormLifecycle, EntityConfig, EntityFormLifecycle, Navigator
from .models import ROLES_ESCRITURA, TABLA_ADMINISTRADORES
from .utils import archivo_a_data_url
from .validators import email as regla_email
from .validators import requerido, validar

logger = logging.getLogger(__name__)

MAX_FILAS_MASIVO = 100
MSG_SIN_CARRERAS = "No hay carreras disponibles. Crea una carrera primero."

REGLAS_LOGIN = (
    requerido("email", "Por favor completa todos los campos"),
    requerido("password", "Por favor completa todos los campos"),
    regla_email("email", "Por favor, ingresa un correo electrónico válido"),
)


def _notificador(request: HttpRequest):
    niveles = {
        "success": messages.success,
        "error": messages.error,
        "warning": messages.warning,
        "info": messages.info,
    }

    def notify(nivel: str, texto: str) -> None:
        niveles[nivel](request, texto)

    return notify


def _puede_editar(request: HttpRequest) -> bool:
    return request.admin.rol in ROLES_ESCRITURA


# (administrador, ruta) con un guardado en curso en este proceso
_ENVIOS_EN_CURSO: set = set()


@asynccontextmanager
async def _envio_unico(request: HttpRequest):
    """Cede False si el mismo administrador ya está guardando este formulario."""
    clave = (request.admin.id, request.path)
    if clave in _ENVIOS_EN_CURSO:
        logger.info("Envío repetido ignorado en %s", request.path)
        yield False
        return
    _ENVIOS_EN_CURSO.add(clave)
    try:
        yield True
    finally:
        _ENVIOS_EN_CURSO.discard(clave)


# =========================================================
# Login / Logout
# =========================================================
@never_cache
@require_http_methods(["GET", "POST"])
async def login_view(request: HttpRequest) -> HttpResponse:
    """GET: formulario • POST: autentica contra Supabase y exige perfil activo (respeta ?next=)."""
    next_url = request.GET.get("next") or request.POST.get("next")
    if request.method == "GET" and sesion_guardada(request) is not None:
        return redirect("panel:dashboard")

    email = ""
    if request.method == "POST":
        email = (request.POST.get("email") or "").strip()
        password = request.POST.get("password") or ""
        try:
            validar({"email": email, "password": password}, REGLAS_LOGIN)
        except ValidationError as exc:
            messages.error(request, exc.message)
            return render(request, "panel/login.html", {"email": email, "next": next_url})

        backend = await get_backend(request)
        try:
            session, perfil = await services.autenticar_administrador(backend.auth, backend.store, email, password)
        except AuthError as exc:
            logger.info("Login rechazado para %s (%s)", email, exc.kind)
            messages.error(request, services.mensaje_login(exc))
        else:
            request.session.cycle_key()
            guardar_sesion(request, session)
            messages.success(request, f"Bienvenido, {perfil.nombre_completo}")
            if next_url and url_has_allowed_host_and_scheme(
                next_url, allowed_hosts={request.get_host()}, require_https=request.is_secure()
            ):
                return redirect(next_url)
            return redirect("panel:dashboard")

    return render(request, "panel/login.html", {"email": email, "next": next_url})


@require_http_methods(["GET", "POST"])
async def logout_view(request: HttpRequest) -> HttpResponse:
    backend = await get_backend(request)
    if backend.auth.session is not None:
        try:
            await backend.auth.get_session()
            await backend.auth.sign_out()
        except AuthError as exc:
            logger.warning("No se pudo cerrar la sesión en Supabase: %s", exc)
    request.session.flush()
    return redirect("panel:login")


# =========================================================
# Dashboard
# =========================================================
@never_cache
@admin_required
async def dashboard(request: HttpRequest) -> HttpResponse:
    stats = await services.estadisticas_dashboard(request.backend.store)
    return render(request, "panel/dashboard.html", {"stats": stats})


# =========================================================
# Listados
# =========================================================
@dataclass(frozen=True)
class Listado:
    """Cómo se lista una entidad: orden del almacén y filtros en memoria."""

    titulo: str
    orden: tuple
    columnas: tuple
    busqueda: tuple = ()
    estado: Optional[str] = None
    filtros: tuple = ()  # (parámetro GET, columna)
    msg_error: str = "Error al cargar los registros"


LISTADOS = {
    "carreras": Listado(
        titulo="Carreras",
        orden=(("nombre", True),),
        columnas=(("nombre", "Nombre"), ("duracion", "Duración"), ("semestres", "Semestres")),
        busqueda=("nombre", "descripcion"),
        estado="activa",
        msg_error="Error al cargar las carreras",
    ),
    "docentes": Listado(
        titulo="Docentes",
        orden=(("orden", True), ("nombre", True)),
        columnas=(("nombre", "Nombre"), ("especialidad", "Especialidad"), ("carrera_nombre", "Carrera")),
        busqueda=("nombre", "especialidad", "titulo"),
        estado="activo",
        filtros=(("carrera", "carrera_id"),),
        msg_error="Error al cargar los docentes",
    ),
    "eventos": Listado(
        titulo="Eventos",
        orden=(("fecha_inicio", False),),
        columnas=(("titulo", "Título"), ("fecha_inicio", "Inicio"), ("ubicacion", "Ubicación"), ("tipo", "Tipo")),
        busqueda=("titulo", "descripcion", "ubicacion"),
        estado="activo",
        filtros=(("tipo", "tipo"),),
        msg_error="Error al cargar los eventos",
    ),
    "noticias": Listado(
        titulo="Noticias",
        orden=(("fecha_publicacion", False),),
        columnas=(("titulo", "Título"), ("autor", "Autor"), ("fecha_publicacion", "Publicación"), ("categoria", "Categoría")),
        busqueda=("titulo", "contenido", "autor"),
        estado="activo",
        filtros=(("categoria", "categoria"),),
        msg_error="Error al cargar las noticias",
    ),
    "videos": Listado(
        titulo="Videos promocionales",
        orden=(("created_at", False),),
        columnas=(("titulo", "Título"), ("url_youtube", "Video"), ("carrera_nombre", "Carrera")),
        busqueda=("titulo", "descripcion"),
        estado="activo",
        filtros=(("carrera", "carrera_id"),),
        msg_error="Error al cargar los videos",
    ),
    "plan-estudios": Listado(
        titulo="Plan de estudios",
        orden=(("semestre_numero", True), ("orden", True)),
        columnas=(("materia_nombre", "Materia"), ("categoria", "Categoría")),
        busqueda=("materia_nombre",),
        filtros=(("categoria", "categoria"),),
        msg_error="Error al cargar las materias",
    ),
    "perfil-egresado": Listado(
        titulo="Perfil del egresado",
        orden=(("orden", True),),
        columnas=(("competencia", "Competencia"), ("orden", "Orden")),
        busqueda=("competencia",),
        msg_error="Error al cargar las competencias",
    ),
    "ambitos-laborales": Listado(
        titulo="Ámbitos laborales",
        orden=(("orden", True),),
        columnas=(("titulo", "Título"), ("descripcion", "Descripción"), ("orden", "Orden")),
        busqueda=("titulo", "descripcion"),
        msg_error="Error al cargar los ámbitos laborales",
    ),
    "administradores": Listado(
        titulo="Administradores",
        orden=(("nombre_completo", True),),
        columnas=(("nombre_completo", "Nombre"), ("email", "Email"), ("rol", "Rol")),
        busqueda=("nombre_completo", "email"),
        estado="activo",
        msg_error="Error al cargar los administradores",
    ),
}


def filtrar_filas(filas: list[dict], listado: Listado, params) -> list[dict]:
    """Filtra en memoria por texto (q), estado (activos/inactivos) y filtros por columna."""
    q = (params.get("q") or "").strip().lower()
    estado = params.get("estado") or "todos"
    resultado = []
    for fila in filas:
        if q and not any(q in str(fila.get(c) or "").lower() for c in listado.busqueda):
            continue
        if listado.estado and estado in ("activos", "inactivos"):
            if bool(fila.get(listado.estado)) != (estado == "activos"):
                continue
        if any(
            params.get(param) and str(fila.get(columna)) != params.get(param)
            for param, columna in listado.filtros
        ):
            continue
        resultado.append(fila)
    return resultado


def _config(clave: str) -> EntityConfig:
    try:
        return entities.entidad(clave)
    except LookupError:
        raise Http404(clave)


def _url(config: EntityConfig, accion: str = "", carrera_id=None, pk=None) -> str:
    nombre = config.ruta_listado + (f"_{accion}" if accion else "")
    kwargs = {}
    if config.listado_por_padre:
        if not carrera_id:
            return reverse(f"{config.ruta_listado}_inicio")
        kwargs["carrera_id"] = carrera_id
    if pk is not None:
        kwargs["pk"] = pk
    return reverse(nombre, kwargs=kwargs or None)


async def _carreras(store) -> list[dict]:
    try:
        return await services.listar_carreras(store)
    except StoreError as exc:
        logger.warning("No se pudieron cargar las carreras: %s", exc)
        return []


async def _redirigir_primera_carrera(request: HttpRequest, config: EntityConfig) -> HttpResponse:
    """Listado por carrera sin carrera: la primera (activas primero, luego por nombre)."""
    carreras = await _carreras(request.backend.store)
    if carreras:
        return redirect(config.ruta_listado, carrera_id=carreras[0]["id"])
    messages.warning(request, MSG_SIN_CARRERAS)
    return render(
        request,
        "panel/entidad_list.html",
        {"listado": LISTADOS[config.clave], "config": config, "filas": [], "sin_carreras": True},
    )


async def _cargar_filas(request: HttpRequest, config: EntityConfig, listado: Listado, filtros=None) -> list[dict]:
    try:
        filas = await request.backend.store.select(config.tabla, filtros=filtros, orden=listado.orden)
    except StoreError as exc:
        logger.warning("Error listando %s: %s", config.tabla, exc)
        messages.error(request, listado.msg_error)
        return []
    return filtrar_filas(filas, listado, request.GET)


def _contexto_listado(request, config, listado, filas, carrera_id=None, **extra) -> dict:
    editable = _puede_editar(request)
    contexto = {
        "config": config,
        "listado": listado,
        "filas": [
            {
                "datos": f,
                "editar": _url(config, "editar", carrera_id, f["id"]) if editable else None,
                "eliminar": _url(config, "eliminar", carrera_id, f["id"]) if editable else None,
            }
            for f in filas
        ],
        "crear_url": _url(config, "crear", carrera_id) if editable else None,
        "masivo_url": (
            reverse(f"{config.ruta_listado}_masivo", kwargs={"carrera_id": carrera_id})
            if editable and carrera_id and config.clave in entities.MASIVOS
            else None
        ),
        "q": request.GET.get("q", ""),
        "estado": request.GET.get("estado", "todos"),
        "carrera_id": carrera_id,
    }
    contexto.update(extra)
    return contexto


@admin_required
@require_http_methods(["GET"])
async def entidad_listado(request: HttpRequest, clave: str, carrera_id: Optional[str] = None) -> HttpResponse:
    config = _config(clave)
    listado = LISTADOS[clave]
    if config.listado_por_padre and not carrera_id:
        return await _redirigir_primera_carrera(request, config)

    filtros = {"carrera_id": carrera_id} if carrera_id else None
    filas = await _cargar_filas(request, config, listado, filtros)
    carreras = await _carreras(request.backend.store)
    nombres = {str(c["id"]): c.get("nombre", "") for c in carreras}
    for fila in filas:
        if "carrera_id" in fila:
            fila["carrera_nombre"] = nombres.get(str(fila["carrera_id"]), "")

    return render(
        request,
        "panel/entidad_list.html",
        _contexto_listado(request, config, listado, filas, carrera_id, carreras=carreras),
    )


@admin_required
@require_http_methods(["GET"])
async def plan_estudios(request: HttpRequest, clave: str, carrera_id: Optional[str] = None) -> HttpResponse:
    """Materias agrupadas por semestre + desglose calculado en la base (no crítico)."""
    config = entities.MATERIA
    if not carrera_id:
        return await _redirigir_primera_carrera(request, config)

    store = request.backend.store
    carreras = await _carreras(store)
    carrera = next((c for c in carreras if str(c["id"]) == str(carrera_id)), None)
    if carrera is None:
        messages.error(request, "Error al cargar la carrera")
        return redirect("panel:carreras")

    materias = await _cargar_filas(request, config, LISTADOS[clave], {"carrera_id": carrera_id})
    desglose = await services.calcular_desglose(store, carrera_id)
    total_semestres = carrera.get("semestres") or 10
    semestres = [
        (n, [m for m in materias if m.get("semestre_numero") == n]) for n in range(1, total_semestres + 1)
    ]
    contexto = _contexto_listado(
        request,
        config,
        LISTADOS[clave],
        materias,
        carrera_id,
        carrera=carrera,
        carreras=carreras,
        desglose=desglose,
    )
    editar = {f["datos"]["id"]: f for f in contexto["filas"]}
    contexto["semestres"] = [(n, [editar[m["id"]] for m in lista]) for n, lista in semestres]
    return render(request, "panel/plan_estudios.html", contexto)


@editor_required
@require_POST
async def entidad_eliminar(request: HttpRequest, clave: str, pk: str, carrera_id: Optional[str] = None) -> HttpResponse:
    config = _config(clave)
    try:
        await request.backend.store.delete(config.tabla, pk)
    except StoreError as exc:
        logger.warning("Error eliminando %s %s: %s", config.tabla, pk, exc)
        messages.error(request, config.msg_error_eliminar)
    else:
        messages.success(request, config.msg_eliminado)
    return redirect(_url(config, carrera_id=carrera_id))


# =========================================================
# Formularios (crear / editar)
# =========================================================
def _valores_post(request: HttpRequest, config: EntityConfig, draft, campos=None) -> dict:
    """POST -> valores del borrador. Las imágenes se convierten a data URL."""
    valores = {}
    for campo in campos or config.campos:
        nombre = campo.nombre
        if nombre in draft.bloqueados:
            continue
        if campo.tipo == "imagen":
            archivo = request.FILES.get(nombre)
            if archivo is not None:
                valores[nombre] = archivo_a_data_url(archivo, settings.PANEL_IMAGE_MAX_BYTES)
            elif request.POST.get(f"quitar_{nombre}"):
                valores[nombre] = ""
        elif campo.tipo == "booleano":
            valores[nombre] = campo.convertir(request.POST.get(nombre))
        elif nombre in request.POST:
            valores[nombre] = campo.convertir(request.POST.get(nombre))
    return valores


async def _procesar_form(request: HttpRequest, lifecycle: EntityFormLifecycle, navigator: Navigator, campos=None):
    """Aplica el POST y envía; devuelve la redirección si se guardó."""
    try:
        lifecycle.actualizar(_valores_post(request, lifecycle.config, lifecycle.draft, campos))
    except ValidationError as exc:
        messages.error(request, exc.message)
        return None
    async with _envio_unico(request) as primero:
        if primero and await lifecycle.submit():
            return redirect(navigator.destino)
    return None


def _campos_contexto(lifecycle: EntityFormLifecycle, campos=None) -> list[dict]:
    draft = lifecycle.draft
    return [
        {"campo": c, "valor": draft.get(c.nombre), "bloqueado": c.nombre in draft.bloqueados}
        for c in campos or lifecycle.config.campos
    ]


@editor_required
@require_http_methods(["GET", "POST"])
async def entidad_form(
    request: HttpRequest, clave: str, pk: Optional[str] = None, carrera_id: Optional[str] = None
) -> HttpResponse:
    config = _config(clave)
    padres = {}
    if config.padre:
        padres[config.padre] = carrera_id or request.GET.get("carrera") or ""

    navigator = Navigator()
    lifecycle = EntityFormLifecycle(
        config,
        request.backend.store,
        _notificador(request),
        navigator,
        identificador=pk,
        padres=padres,
    )
    async with lifecycle:
        if request.method == "POST":
            respuesta = await _procesar_form(request, lifecycle, navigator)
            if respuesta is not None:
                return respuesta
        carreras = await _carreras(request.backend.store) if config.padre else []

    return render(
        request,
        "panel/entidad_form.html",
        {
            "config": config,
            "draft": lifecycle.draft,
            "editando": lifecycle.editando,
            "campos": _campos_contexto(lifecycle),
            "carreras": carreras,
            "cancelar_url": _url(config, carrera_id=carrera_id or lifecycle.draft.get(config.padre or "")),
        },
    )


# =========================================================
# Carga masiva
# =========================================================
def _filas_post(request: HttpRequest, config) -> list[dict]:
    try:
        total = int(request.POST.get("total_filas") or 0)
    except ValueError:
        total = 0
    filas = []
    for i in range(min(total, MAX_FILAS_MASIVO)):
        fila = {}
        for campo in config.campos:
            nombre = f"filas-{i}-{campo.nombre}"
            if campo.tipo == "imagen":
                archivo = request.FILES.get(nombre)
                fila[campo.nombre] = (
                    archivo_a_data_url(archivo, settings.PANEL_IMAGE_MAX_BYTES)
                    if archivo is not None
                    else request.POST.get(nombre) or ""
                )
            else:
                fila[campo.nombre] = campo.convertir(request.POST.get(nombre))
        filas.append(fila)
    return filas


@editor_required
@require_http_methods(["GET", "POST"])
async def entidad_masivo(request: HttpRequest, clave: str, carrera_id: str) -> HttpResponse:
    try:
        config = entities.masivo(clave)
    except LookupError:
        raise Http404(clave)

    navigator = Navigator()
    lifecycle = BulkFormLifecycle(
        config, request.backend.store, _notificador(request), navigator, padre_id=carrera_id
    )
    async with lifecycle:
        if navigator.destino:
            return redirect(navigator.destino)

        if request.method == "POST":
            accion = request.POST.get("accion") or "guardar"
            try:
                lifecycle.cargar_filas(_filas_post(request, config))
            except ValidationError as exc:
                messages.error(request, exc.message)
            else:
                if accion == "agregar":
                    lifecycle.agregar_fila()
                elif accion.startswith("quitar-"):
                    try:
                        lifecycle.quitar_fila(int(accion.split("-", 1)[1]))
                    except ValueError:
                        logger.debug("Fila inválida para quitar: %s", accion)
                else:
                    async with _envio_unico(request) as primero:
                        if primero and await lifecycle.submit():
                            return redirect(navigator.destino)

    filas = [
        {
            "indice": i,
            "prefijo": f"filas-{i}-",
            "campos": [{"campo": c, "valor": f.get(c.nombre)} for c in config.campos],
        }
        for i, f in enumerate(lifecycle.filas)
    ]
    return render(
        request,
        "panel/masivo_form.html",
        {
            "config": config,
            "carrera": lifecycle.padre,
            "filas": filas,
            "total_filas": len(filas),
            "validas": sum(1 for f in lifecycle.filas if config.fila_valida(f.datos)),
            "cancelar_url": reverse(config.ruta_listado, kwargs={"carrera_id": carrera_id}),
        },
    )


# =========================================================
# Configuración del sitio (registro único)
# =========================================================
@editor_required
@require_http_methods(["GET", "POST"])
async def configuracion(request: HttpRequest) -> HttpResponse:
    config = entities.CONFIGURACION
    store = request.backend.store
    error_carga = False
    try:
        actual = await services.obtener_configuracion(store)
    except StoreError as exc:
        logger.warning("No se pudo cargar la configuración: %s", exc)
        messages.error(request, config.msg_error_carga)
        actual, error_carga = None, True

    navigator = Navigator()
    lifecycle = EntityFormLifecycle(
        config, store, _notificador(request), navigator, identificador=actual["id"] if actual else None
    )
    async with lifecycle:
        if error_carga:
            lifecycle.draft.cargando = True
        if request.method == "POST":
            respuesta = await _procesar_form(request, lifecycle, navigator)
            if respuesta is not None:
                return respuesta

    return render(
        request,
        "panel/entidad_form.html",
        {
            "config": config,
            "draft": lifecycle.draft,
            "editando": True,
            "campos": _campos_contexto(lifecycle),
            "cancelar_url": reverse("panel:dashboard"),
        },
    )


# =========================================================
# Administradores
# =========================================================
@superadmin_required
@require_http_methods(["GET"])
async def administradores(request: HttpRequest) -> HttpResponse:
    config = entities.ADMINISTRADOR
    listado = LISTADOS["administradores"]
    filas = await _cargar_filas(request, config, listado)
    contexto = _contexto_listado(request, config, listado, filas)
    for fila in contexto["filas"]:
        if fila["datos"]["id"] == request.admin.id:
            fila["eliminar"] = None
    return render(request, "panel/entidad_list.html", contexto)


_CAMPOS_CREAR_ADMIN = ("email", "password", "nombre_completo", "rol", "activo")
_CAMPOS_EDITAR_ADMIN = ("nombre_completo", "rol", "activo", "nueva_password", "confirmar_password")


@superadmin_required
@require_http_methods(["GET", "POST"])
async def administrador_form(request: HttpRequest, pk: Optional[str] = None) -> HttpResponse:
    backend = request.backend
    navigator = Navigator()
    lifecycle = AdministradorFormLifecycle(
        backend.store,
        backend.auth,
        _notificador(request),
        navigator,
        identificador=pk,
        actor_id=request.admin.id,
    )
    nombres = _CAMPOS_EDITAR_ADMIN if lifecycle.editando else _CAMPOS_CREAR_ADMIN
    campos = [lifecycle.config.campo(n) for n in nombres]
    # en la propia cuenta rol y activo se muestran pero no se aceptan del POST
    editables = [c for c in campos if not (lifecycle.es_propia_cuenta and c.nombre in ("rol", "activo"))]
    async with lifecycle:
        if request.method == "POST":
            respuesta = await _procesar_form(request, lifecycle, navigator, editables)
            if respuesta is not None:
                return respuesta

    return render(
        request,
        "panel/entidad_form.html",
        {
            "config": lifecycle.config,
            "draft": lifecycle.draft,
            "editando": lifecycle.editando,
            "campos": [
                dict(c, bloqueado=c["bloqueado"] or c["campo"] not in editables)
                for c in _campos_contexto(lifecycle, campos)
            ],
            "propia_cuenta": lifecycle.es_propia_cuenta,
            "cancelar_url": reverse("panel:administradores"),
        },
    )


@superadmin_required
@require_POST
async def administrador_eliminar(request: HttpRequest, pk: str) -> HttpResponse:
    backend = request.backend
    try:
        await eliminar_administrador(backend.store, backend.auth, pk, actor_id=request.admin.id)
    except ValidationError as exc:
        messages.error(request, exc.message)
    except PanelError as exc:
        logger.warning("Error eliminando administrador %s de %s: %s", pk, TABLA_ADMINISTRADORES, exc)
        messages.error(request, entities.ADMINISTRADOR.msg_error_eliminar)
    else:
        messages.success(request, entities.ADMINISTRADOR.msg_eliminado)
    return redirect("panel:administradores")
