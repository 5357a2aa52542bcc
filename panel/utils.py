import base64
import re
from typing import Optional

from django.utils.text import slugify

from .errors import ValidationError

_YOUTUBE_ID = re.compile(r"^[a-zA-Z0-9_-]{11}$")
_YOUTUBE_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=)([a-zA-Z0-9_-]{11})"),
    re.compile(r"(?:youtu\.be/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"(?:youtube\.com/embed/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"(?:youtube\.com/watch\?.*[&?]v=)([a-zA-Z0-9_-]{11})"),
    re.compile(r"(?:youtube\.com/v/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/.*[/=]([a-zA-Z0-9_-]{11})(?:[?&#]|$)"),
]

IMAGENES_PERMITIDAS = ("image/jpeg", "image/jpg", "image/png", "image/webp")


def generar_slug(texto: str) -> str:
    """'Ingeniería de Sistemas' -> 'ingenieria-de-sistemas'."""
    return re.sub(r"-+", "-", slugify(texto or "")).strip("-")


def extraer_youtube_id(url: Optional[str]) -> Optional[str]:
    """Id de 11 caracteres desde una URL de YouTube (o el id tal cual)."""
    if not url or not url.strip():
        return None
    url = url.strip()
    if _YOUTUBE_ID.fullmatch(url):
        return url
    for patron in _YOUTUBE_PATTERNS:
        m = patron.search(url)
        if m:
            return m.group(1)
    posible = re.split(r"[?&#]", url)[0]
    if _YOUTUBE_ID.fullmatch(posible):
        return posible
    return None


def miniatura_youtube(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/mqdefault.jpg"


def formato_tamano(num_bytes: int) -> str:
    if num_bytes == 0:
        return "0 Bytes"
    unidades = ["Bytes", "KB", "MB", "GB"]
    i = 0
    valor = float(num_bytes)
    while valor >= 1000 and i < len(unidades) - 1:
        valor /= 1000
        i += 1
    return f"{valor:.2f}".rstrip("0").rstrip(".") + f" {unidades[i]}"


def archivo_a_data_url(archivo, max_bytes: int) -> str:
    """Valida tipo/tamaño de un UploadedFile y lo devuelve como data URL."""
    tipo = getattr(archivo, "content_type", "") or ""
    if tipo not in IMAGENES_PERMITIDAS:
        raise ValidationError("Solo se permiten imágenes JPG, PNG o WebP")
    if archivo.size > max_bytes:
        raise ValidationError(f"La imagen es muy grande. Máximo {formato_tamano(max_bytes)}")
    contenido = base64.b64encode(archivo.read()).decode("ascii")
    return f"data:{tipo};base64,{contenido}"


def iniciales(nombre: str) -> str:
    return "".join(p[0] for p in (nombre or "").split() if p).upper()[:2]
