from django.urls import path

from . import views

app_name = "panel"


def _crud(prefijo, nombre, clave):
    """Listado, crear, editar y eliminar de una entidad sin carrera en la ruta."""
    extra = {"clave": clave}
    return [
        path(f"{prefijo}/", views.entidad_listado, extra, name=nombre),
        path(f"{prefijo}/crear/", views.entidad_form, extra, name=f"{nombre}_crear"),
        path(f"{prefijo}/editar/<str:pk>/", views.entidad_form, extra, name=f"{nombre}_editar"),
        path(f"{prefijo}/eliminar/<str:pk>/", views.entidad_eliminar, extra, name=f"{nombre}_eliminar"),
    ]


def _crud_por_carrera(prefijo, nombre, clave, listado=views.entidad_listado):
    """Igual que _crud pero anidado bajo /<carrera_id>/, con carga masiva."""
    extra = {"clave": clave}
    return [
        path(f"{prefijo}/", listado, extra, name=f"{nombre}_inicio"),
        path(f"{prefijo}/<str:carrera_id>/", listado, extra, name=nombre),
        path(f"{prefijo}/<str:carrera_id>/crear/", views.entidad_form, extra, name=f"{nombre}_crear"),
        path(f"{prefijo}/<str:carrera_id>/editar/<str:pk>/", views.entidad_form, extra, name=f"{nombre}_editar"),
        path(
            f"{prefijo}/<str:carrera_id>/eliminar/<str:pk>/",
            views.entidad_eliminar,
            extra,
            name=f"{nombre}_eliminar",
        ),
        path(
            f"{prefijo}/<str:carrera_id>/agregar-masivo/",
            views.entidad_masivo,
            extra,
            name=f"{nombre}_masivo",
        ),
    ]


urlpatterns = [
    # ===== Autenticación =====
    path("login/", views.login_view, name="login"),
    path("logout/", views.logout_view, name="logout"),

    # ===== Dashboard =====
    path("", views.dashboard, name="dashboard"),

    # ===== Entidades =====
    *_crud("carreras", "carreras", "carreras"),
    *_crud("docentes", "docentes", "docentes"),
    *_crud("eventos", "eventos", "eventos"),
    *_crud("noticias", "noticias", "noticias"),
    *_crud("videos", "videos", "videos"),

    # ===== Por carrera =====
    *_crud_por_carrera("plan-estudios", "plan_estudios", "plan-estudios", listado=views.plan_estudios),
    *_crud_por_carrera("perfil-egresado", "perfil_egresado", "perfil-egresado"),
    *_crud_por_carrera("ambitos-laborales", "ambitos_laborales", "ambitos-laborales"),

    # ===== Configuración =====
    path("configuracion/", views.configuracion, name="configuracion"),

    # ===== Administradores =====
    path("administradores/", views.administradores, name="administradores"),
    path("administradores/crear/", views.administrador_form, name="administradores_crear"),
    path("administradores/editar/<str:pk>/", views.administrador_form, name="administradores_editar"),
    path("administradores/eliminar/<str:pk>/", views.administrador_eliminar, name="administradores_eliminar"),
]
