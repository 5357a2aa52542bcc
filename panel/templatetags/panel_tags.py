from django import template

from panel.models import ROLES
from panel.utils import extraer_youtube_id, iniciales, miniatura_youtube

register = template.Library()


@register.filter
def get_item(dic, clave):
    """{{ fila|get_item:'nombre' }}"""
    if not dic:
        return ""
    return dic.get(clave, "")


@register.filter
def youtube_thumb(valor):
    video_id = extraer_youtube_id(valor or "")
    return miniatura_youtube(video_id) if video_id else ""


@register.filter(name="iniciales")
def iniciales_filter(nombre):
    return iniciales(nombre)


@register.filter
def rol_display(rol):
    return ROLES.get(rol, rol)


@register.filter
def porcentaje(valor):
    try:
        return f"{float(valor):.1f}%"
    except (TypeError, ValueError):
        return "0%"
