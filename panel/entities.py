"""Registro de entidades del panel.

Cada formulario de creación/edición es una instancia de ``EntityConfig``;
las pantallas de carga masiva son ``BulkConfig``. Las vistas genéricas
buscan la configuración por su clave de ruta.
"""

from __future__ import annotations

from django.utils import timezone

from . import models as m
from . import validators as v
from .lifecycle import BulkConfig, Campo, EntityConfig
from .utils import generar_slug


def _hoy() -> str:
    return timezone.localdate().isoformat()


def _slug_desde_nombre(draft, campo: str, editando: bool) -> None:
    """En creación el slug sigue al nombre mientras el usuario no escriba uno propio."""
    if editando:
        return
    if campo == "nombre" or (campo == "slug" and not str(draft.get("slug") or "").strip()):
        draft.datos["slug"] = generar_slug(draft.get("nombre") or "")


CARRERA_REQUERIDA = v.requerido("carrera_id", "Debes seleccionar una carrera")

# ----------------------------------------------------------------------
# Formularios individuales
# ----------------------------------------------------------------------
CARRERA = EntityConfig(
    clave="carreras",
    tabla=m.TABLA_CARRERAS,
    titulo="Carrera",
    campos=(
        Campo("nombre"),
        Campo("slug"),
        Campo("descripcion", etiqueta="Descripción", multilinea=True),
        Campo("duracion", etiqueta="Duración"),
        Campo("semestres", "entero", defecto=10),
        Campo("imagen_hero", "imagen", etiqueta="Imagen principal"),
        Campo("descripcion_docentes", opcional=True, etiqueta="Descripción de docentes", multilinea=True),
        Campo("video_youtube", "youtube", etiqueta="Video de YouTube"),
        Campo("activa", "booleano", defecto=True, etiqueta="Activa"),
    ),
    reglas=(
        v.requerido("nombre", "El nombre es requerido"),
        v.requerido("slug", "El slug es requerido"),
        v.longitud_minima("descripcion", 50, "La descripción debe tener al menos 50 caracteres"),
        v.requerido("duracion", "La duración es requerida"),
        v.rango("semestres", 1, 20, "Los semestres deben estar entre 1 y 20"),
        v.youtube("video_youtube", "URL de YouTube inválida", opcional=True),
    ),
    ruta_listado="panel:carreras",
    al_cambiar=_slug_desde_nombre,
    msg_creado="Carrera creada correctamente",
    msg_actualizado="Carrera actualizada correctamente",
    msg_error_carga="Error al cargar la carrera",
    msg_error_guardado="Error al guardar la carrera",
    msg_eliminado="Carrera eliminada correctamente",
    msg_error_eliminar="Error al eliminar la carrera",
)

DOCENTE = EntityConfig(
    clave="docentes",
    tabla=m.TABLA_DOCENTES,
    titulo="Docente",
    campos=(
        Campo("carrera_id", etiqueta="Carrera"),
        Campo("nombre"),
        Campo("especialidad"),
        Campo("titulo", etiqueta="Título"),
        Campo("experiencia", multilinea=True),
        Campo("imagen_avatar", "imagen", etiqueta="Foto"),
        Campo("cv_imagen", "imagen", etiqueta="Imagen del CV"),
        Campo("orden", "entero", defecto=0),
        Campo("activo", "booleano", defecto=True),
    ),
    reglas=(
        v.requerido("carrera_id", "Selecciona una carrera"),
        v.longitud_minima("nombre", 5, "El nombre debe tener al menos 5 caracteres"),
        v.longitud_minima("especialidad", 3, "La especialidad debe tener al menos 3 caracteres"),
        v.longitud_minima("titulo", 5, "El título debe tener al menos 5 caracteres"),
        v.longitud_minima("experiencia", 10, "La experiencia debe tener al menos 10 caracteres"),
    ),
    padre="carrera_id",
    ruta_listado="panel:docentes",
    msg_creado="Docente creado correctamente",
    msg_actualizado="Docente actualizado correctamente",
    msg_error_carga="Error al cargar el docente",
    msg_error_guardado="Error al guardar el docente",
    msg_eliminado="Docente eliminado correctamente",
    msg_error_eliminar="Error al eliminar el docente",
)

MATERIA = EntityConfig(
    clave="plan-estudios",
    tabla=m.TABLA_PLAN_ESTUDIOS,
    titulo="Materia",
    campos=(
        Campo("carrera_id", etiqueta="Carrera"),
        Campo("semestre_numero", "entero", defecto=1, etiqueta="Semestre"),
        Campo("materia_nombre", recortar=True, etiqueta="Materia"),
        Campo("materia_color", defecto=m.MATERIA_COLORES[0][0], etiqueta="Color", opciones=tuple(m.MATERIA_COLORES)),
        Campo("horas_teoria", "entero", defecto=0, etiqueta="Horas de teoría"),
        Campo("horas_practica", "entero", defecto=0, etiqueta="Horas de práctica"),
        Campo("categoria", defecto="Otros", etiqueta="Categoría", opciones=tuple((c, c) for c in m.MATERIA_CATEGORIAS)),
        Campo("orden", "entero", defecto=0),
    ),
    reglas=(
        CARRERA_REQUERIDA,
        v.longitud_minima("materia_nombre", 3, "El nombre de la materia debe tener al menos 3 caracteres"),
        v.no_negativos(("horas_teoria", "horas_practica"), "Las horas no pueden ser negativas"),
        v.rango("semestre_numero", 1, 10, "El semestre debe estar entre 1 y 10"),
    ),
    padre="carrera_id",
    listado_por_padre=True,
    ruta_listado="panel:plan_estudios",
    msg_creado="Materia creada correctamente",
    msg_actualizado="Materia actualizada correctamente",
    msg_error_carga="Error al cargar la materia",
    msg_error_guardado="Error al guardar la materia",
    msg_eliminado="Materia eliminada correctamente",
    msg_error_eliminar="Error al eliminar la materia",
)

EVENTO = EntityConfig(
    clave="eventos",
    tabla=m.TABLA_EVENTOS,
    titulo="Evento",
    campos=(
        Campo("titulo", etiqueta="Título"),
        Campo("descripcion", etiqueta="Descripción", multilinea=True),
        Campo("fecha_inicio", "fechahora"),
        Campo("fecha_fin", "fechahora"),
        Campo("ubicacion", etiqueta="Ubicación"),
        Campo("imagen", "imagen"),
        Campo("tipo", defecto=m.EVENTO_TIPOS[0], opciones=tuple((t, t) for t in m.EVENTO_TIPOS)),
        Campo("activo", "booleano", defecto=True),
    ),
    reglas=(
        v.longitud_minima("titulo", 5, "El título debe tener al menos 5 caracteres"),
        v.longitud_minima("descripcion", 20, "La descripción debe tener al menos 20 caracteres"),
        v.requerido("fecha_inicio", "La fecha de inicio es requerida"),
        v.formato_fecha_hora(("fecha_inicio", "fecha_fin"), "La fecha y hora deben tener el formato AAAA-MM-DD HH:MM"),
        v.requerido("ubicacion", "La ubicación es requerida"),
        v.fecha_no_anterior("fecha_fin", "fecha_inicio", "La fecha de fin debe ser posterior a la de inicio"),
    ),
    ruta_listado="panel:eventos",
    msg_creado="Evento creado correctamente",
    msg_actualizado="Evento actualizado correctamente",
    msg_error_carga="Error al cargar el evento",
    msg_error_guardado="Error al guardar el evento",
    msg_eliminado="Evento eliminado correctamente",
    msg_error_eliminar="Error al eliminar el evento",
)

NOTICIA = EntityConfig(
    clave="noticias",
    tabla=m.TABLA_NOTICIAS,
    titulo="Noticia",
    campos=(
        Campo("titulo", etiqueta="Título"),
        Campo("contenido", multilinea=True),
        Campo("imagen_portada", "imagen", etiqueta="Imagen de portada"),
        Campo("autor"),
        Campo("fecha_publicacion", "fecha", defecto=_hoy, etiqueta="Fecha de publicación"),
        Campo("categoria", defecto=m.NOTICIA_CATEGORIAS[0], etiqueta="Categoría", opciones=tuple((c, c) for c in m.NOTICIA_CATEGORIAS)),
        Campo("activo", "booleano", defecto=True),
    ),
    reglas=(
        v.longitud_minima("titulo", 5, "El título debe tener al menos 5 caracteres"),
        v.longitud_minima("contenido", 20, "El contenido debe tener al menos 20 caracteres"),
        v.requerido("autor", "El autor es requerido"),
        v.requerido("fecha_publicacion", "La fecha de publicación es requerida"),
        v.formato_fecha(("fecha_publicacion",), "La fecha de publicación debe tener el formato AAAA-MM-DD"),
    ),
    ruta_listado="panel:noticias",
    msg_creado="Noticia creada correctamente",
    msg_actualizado="Noticia actualizada correctamente",
    msg_error_carga="Error al cargar la noticia",
    msg_error_guardado="Error al guardar la noticia",
    msg_eliminado="Noticia eliminada correctamente",
    msg_error_eliminar="Error al eliminar la noticia",
)

VIDEO = EntityConfig(
    clave="videos",
    tabla=m.TABLA_VIDEOS,
    titulo="Video promocional",
    campos=(
        Campo("carrera_id", etiqueta="Carrera"),
        Campo("titulo", opcional=True, etiqueta="Título"),
        Campo("url_youtube", "youtube", etiqueta="URL de YouTube"),
        Campo("descripcion", opcional=True, etiqueta="Descripción", multilinea=True),
        Campo("activo", "booleano", defecto=True),
    ),
    reglas=(
        CARRERA_REQUERIDA,
        v.requerido("url_youtube", "La URL de YouTube es requerida"),
        v.youtube("url_youtube", "URL de YouTube inválida"),
    ),
    padre="carrera_id",
    ruta_listado="panel:videos",
    msg_creado="Video creado correctamente",
    msg_actualizado="Video actualizado correctamente",
    msg_error_carga="Error al cargar el video",
    msg_error_guardado="Error al guardar el video",
    msg_eliminado="Video eliminado correctamente",
    msg_error_eliminar="Error al eliminar el video",
)

COMPETENCIA = EntityConfig(
    clave="perfil-egresado",
    tabla=m.TABLA_PERFIL_EGRESADO,
    titulo="Competencia",
    campos=(
        Campo("carrera_id", etiqueta="Carrera"),
        Campo("competencia", recortar=True, multilinea=True),
        Campo("orden", "entero", defecto=0),
    ),
    reglas=(
        CARRERA_REQUERIDA,
        v.longitud_minima("competencia", 10, "La competencia debe tener al menos 10 caracteres"),
    ),
    padre="carrera_id",
    listado_por_padre=True,
    ruta_listado="panel:perfil_egresado",
    msg_creado="Competencia creada correctamente",
    msg_actualizado="Competencia actualizada correctamente",
    msg_error_carga="Error al cargar la competencia",
    msg_error_guardado="Error al guardar la competencia",
    msg_eliminado="Competencia eliminada correctamente",
    msg_error_eliminar="Error al eliminar la competencia",
)

AMBITO = EntityConfig(
    clave="ambitos-laborales",
    tabla=m.TABLA_AMBITOS,
    titulo="Ámbito laboral",
    campos=(
        Campo("carrera_id", etiqueta="Carrera"),
        Campo("titulo", recortar=True, etiqueta="Título"),
        Campo("descripcion", recortar=True, etiqueta="Descripción", multilinea=True),
        Campo("imagen", "imagen"),
        Campo("orden", "entero", defecto=0),
    ),
    reglas=(
        CARRERA_REQUERIDA,
        v.longitud_minima("titulo", 3, "El título debe tener al menos 3 caracteres"),
        v.longitud_minima("descripcion", 10, "La descripción debe tener al menos 10 caracteres"),
    ),
    padre="carrera_id",
    listado_por_padre=True,
    ruta_listado="panel:ambitos_laborales",
    msg_creado="Ámbito laboral creado correctamente",
    msg_actualizado="Ámbito laboral actualizado correctamente",
    msg_error_carga="Error al cargar el ámbito laboral",
    msg_error_guardado="Error al guardar el ámbito laboral",
    msg_eliminado="Ámbito laboral eliminado correctamente",
    msg_error_eliminar="Error al eliminar el ámbito laboral",
)

CONFIGURACION = EntityConfig(
    clave="configuracion",
    tabla=m.TABLA_CONFIGURACION,
    titulo="Configuración",
    campos=(
        Campo("titulo_hero", defecto="Facultad de Ciencia y Tecnología", etiqueta="Título principal"),
        Campo("subtitulo_hero", defecto="Universidad Evangélica Boliviana", etiqueta="Subtítulo"),
        Campo("imagen_hero", "imagen", etiqueta="Imagen principal"),
        Campo("logo_facultad", "imagen", etiqueta="Logo"),
        Campo("descripcion_general", etiqueta="Descripción general", multilinea=True),
        Campo("video_youtube", "youtube", etiqueta="Video de YouTube"),
        Campo("activo", "booleano", defecto=True),
    ),
    reglas=(
        v.requerido("titulo_hero", "El título principal es requerido"),
        v.requerido("subtitulo_hero", "El subtítulo es requerido"),
        v.longitud_minima("descripcion_general", 50, "La descripción general debe tener al menos 50 caracteres"),
        v.youtube("video_youtube", "URL de YouTube inválida", opcional=True),
    ),
    ruta_listado="panel:configuracion",
    msg_creado="Configuración guardada correctamente",
    msg_actualizado="Configuración guardada correctamente",
    msg_error_carga="Error al cargar la configuración",
    msg_error_guardado="Error al guardar la configuración",
)

ADMINISTRADOR = EntityConfig(
    clave="administradores",
    tabla=m.TABLA_ADMINISTRADORES,
    titulo="Administrador",
    campos=(
        Campo("email", recortar=True),
        Campo("password", cliente=True, etiqueta="Contraseña"),
        Campo("nombre_completo"),
        Campo("rol", defecto=m.ROL_EDITOR, opciones=tuple(m.ROLES.items())),
        Campo("activo", "booleano", defecto=True),
        Campo("nueva_password", cliente=True, etiqueta="Nueva contraseña"),
        Campo("confirmar_password", cliente=True, etiqueta="Confirmar contraseña"),
    ),
    reglas=(
        v.email("email", "Email inválido"),
        v.longitud_minima("password", 8, "La contraseña debe tener al menos 8 caracteres"),
        v.longitud_minima("nombre_completo", 3, "El nombre completo debe tener al menos 3 caracteres"),
    ),
    ruta_listado="panel:administradores",
    msg_creado="Administrador creado correctamente",
    msg_actualizado="Administrador actualizado correctamente",
    msg_error_carga="Error al cargar el administrador",
    msg_error_guardado="Error al guardar el administrador",
    msg_eliminado="Administrador eliminado correctamente",
    msg_error_eliminar="Error al eliminar el administrador",
)

REGLAS_EDICION_ADMINISTRADOR = (
    v.longitud_minima("nombre_completo", 3, "El nombre completo debe tener al menos 3 caracteres"),
    v.longitud_minima_opcional("nueva_password", 8, "La nueva contraseña debe tener al menos 8 caracteres"),
    v.iguales("nueva_password", "confirmar_password", "Las contraseñas no coinciden"),
)

ENTIDADES = {
    c.clave: c
    for c in (CARRERA, DOCENTE, MATERIA, EVENTO, NOTICIA, VIDEO, COMPETENCIA, AMBITO)
}


# ----------------------------------------------------------------------
# Carga masiva
# ----------------------------------------------------------------------
def _texto(fila: dict, campo: str) -> str:
    return str(fila.get(campo) or "").strip()


def _reglas_materias(carrera: dict) -> list:
    maximo = (carrera or {}).get("semestres") or 10

    def semestre_valido(fila: dict) -> bool:
        numero = fila.get("semestre_numero")
        return numero is not None and 1 <= numero <= maximo

    return [
        v.cada_fila(lambda f: bool(_texto(f, "materia_nombre")), "Todas las materias deben tener un nombre"),
        v.cada_fila(semestre_valido, f"Los semestres deben estar entre 1 y {maximo}"),
    ]


MATERIAS_MASIVO = BulkConfig(
    clave="plan-estudios",
    tabla=m.TABLA_PLAN_ESTUDIOS,
    titulo="Agregar materias",
    campos=(
        Campo("semestre_numero", "entero", defecto=1, etiqueta="Semestre"),
        Campo("materia_nombre", recortar=True, etiqueta="Materia"),
        Campo("materia_color", defecto=m.MATERIA_COLORES[0][0], etiqueta="Color", opciones=tuple(m.MATERIA_COLORES)),
        Campo("horas_teoria", "entero", defecto=0, etiqueta="Horas de teoría"),
        Campo("horas_practica", "entero", defecto=0, etiqueta="Horas de práctica"),
        Campo("categoria", defecto="Otros", etiqueta="Categoría", opciones=tuple((c, c) for c in m.MATERIA_CATEGORIAS)),
        Campo("orden", "entero", defecto=0),
    ),
    reglas=_reglas_materias,
    fila_valida=lambda f: bool(_texto(f, "materia_nombre")),
    ruta_listado="panel:plan_estudios",
    msg_exito=lambda n: f"{n} materia(s) agregada(s) correctamente",
    msg_vacio="No hay materias válidas para guardar",
    msg_minimo="Debe haber al menos una materia",
    msg_error_guardado="Error al guardar las materias",
)

COMPETENCIAS_MASIVO = BulkConfig(
    clave="perfil-egresado",
    tabla=m.TABLA_PERFIL_EGRESADO,
    titulo="Agregar competencias",
    campos=(
        Campo("competencia", recortar=True, multilinea=True),
        Campo("orden", "entero", defecto=0),
    ),
    reglas=lambda carrera: [
        v.cada_fila(lambda f: bool(_texto(f, "competencia")), "Todas las competencias deben tener un texto"),
    ],
    fila_valida=lambda f: bool(_texto(f, "competencia")),
    ruta_listado="panel:perfil_egresado",
    msg_exito=lambda n: f"{n} competencia(s) agregada(s) correctamente",
    msg_vacio="No hay competencias válidas para guardar",
    msg_minimo="Debe haber al menos una competencia",
    msg_error_guardado="Error al guardar las competencias",
)

AMBITOS_MASIVO = BulkConfig(
    clave="ambitos-laborales",
    tabla=m.TABLA_AMBITOS,
    titulo="Agregar ámbitos laborales",
    campos=(
        Campo("titulo", recortar=True, etiqueta="Título"),
        Campo("descripcion", recortar=True, etiqueta="Descripción", multilinea=True),
        Campo("orden", "entero", defecto=0),
        Campo("imagen", "imagen"),
    ),
    reglas=lambda carrera: [
        v.cada_fila(
            lambda f: bool(_texto(f, "titulo")) and bool(_texto(f, "descripcion")),
            "Todos los ámbitos deben tener título y descripción",
        ),
    ],
    fila_valida=lambda f: bool(_texto(f, "titulo")) and bool(_texto(f, "descripcion")),
    ruta_listado="panel:ambitos_laborales",
    msg_exito=lambda n: f"{n} ámbito(s) laboral(es) agregado(s) correctamente",
    msg_vacio="No hay ámbitos válidos para guardar",
    msg_minimo="Debe haber al menos un ámbito laboral",
    msg_error_guardado="Error al guardar los ámbitos laborales",
)

MASIVOS = {c.clave: c for c in (MATERIAS_MASIVO, COMPETENCIAS_MASIVO, AMBITOS_MASIVO)}


def entidad(clave: str) -> EntityConfig:
    try:
        return ENTIDADES[clave]
    except KeyError:
        raise LookupError(f"Entidad desconocida: {clave}") from None


def masivo(clave: str) -> BulkConfig:
    try:
        return MASIVOS[clave]
    except KeyError:
        raise LookupError(f"Carga masiva no disponible para: {clave}") from None
