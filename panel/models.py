"""Registros del panel.

Las tablas viven en Supabase; aquí sólo se declaran los nombres de tabla y
los valores que el panel necesita tipar (perfil de administrador y desglose
del plan de estudios). El resto de entidades se maneja como filas planas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from django.utils.dateparse import parse_datetime

# === Tablas ===
TABLA_CARRERAS = "carreras"
TABLA_DOCENTES = "docentes"
TABLA_PLAN_ESTUDIOS = "plan_estudios"
TABLA_EVENTOS = "eventos"
TABLA_NOTICIAS = "noticias"
TABLA_VIDEOS = "videos_promocionales"
TABLA_PERFIL_EGRESADO = "perfil_egresado"
TABLA_AMBITOS = "ambitos_laborales"
TABLA_CONFIGURACION = "configuracion_facultad"
TABLA_ADMINISTRADORES = "perfiles_administradores"

RPC_DESGLOSE = "calcular_desglose_carrera"

# === Roles ===
ROL_ADMIN = "admin"
ROL_EDITOR = "editor"
ROL_VIEWER = "viewer"

ROLES = {
    ROL_ADMIN: "Administrador",
    ROL_EDITOR: "Editor",
    ROL_VIEWER: "Visualizador",
}
ROLES_ESCRITURA = (ROL_ADMIN, ROL_EDITOR)

# === Catálogos ===
MATERIA_COLORES = [
    ("#2563eb", "Azul"),
    ("#06b6d4", "Cian"),
    ("#10b981", "Verde"),
    ("#ec4899", "Rosa"),
    ("#c77316", "Naranja"),
    ("#dc2626", "Rojo"),
    ("#8b5cf6", "Morado"),
    ("#eab308", "Amarillo"),
]
MATERIA_CATEGORIAS = ["Electrónica", "Matemática", "Física", "Control", "Otros"]
EVENTO_TIPOS = ["Académico", "Cultural", "Deportivo"]
NOTICIA_CATEGORIAS = ["General", "Institucional", "Académico", "Tecnología"]


@dataclass(frozen=True)
class PerfilAdministrador:
    """Registro de autorización asociado a una identidad de Supabase Auth."""

    id: str
    nombre_completo: str
    email: str
    rol: str = ROL_EDITOR
    activo: bool = True
    ultimo_acceso: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "PerfilAdministrador":
        ultimo = row.get("ultimo_acceso")
        return cls(
            id=str(row["id"]),
            nombre_completo=row.get("nombre_completo") or "",
            email=row.get("email") or "",
            rol=row.get("rol") or ROL_VIEWER,
            activo=bool(row.get("activo", False)),
            ultimo_acceso=parse_datetime(ultimo) if isinstance(ultimo, str) else ultimo,
        )

    @property
    def rol_display(self) -> str:
        return ROLES.get(self.rol, self.rol)

    def __str__(self):
        return f"{self.email} ({self.rol})"


@dataclass(frozen=True)
class DesgloseCarrera:
    """Resultado de la RPC calcular_desglose_carrera."""

    porcentaje_teoria: float = 0
    porcentaje_practica: float = 0
    desglose_categoria: dict = field(default_factory=dict)
    total_anos: float = 0
    total_semestres: int = 0
    total_horas: int = 0

    @classmethod
    def from_row(cls, row: dict) -> "DesgloseCarrera":
        return cls(
            porcentaje_teoria=row.get("porcentaje_teoria") or 0,
            porcentaje_practica=row.get("porcentaje_practica") or 0,
            desglose_categoria=dict(row.get("desglose_categoria") or {}),
            total_anos=row.get("total_anos") or 0,
            total_semestres=row.get("total_semestres") or 0,
            total_horas=(row.get("total_horas_teoria") or 0) + (row.get("total_horas_practica") or 0),
        )
