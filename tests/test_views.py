import asyncio
from types import SimpleNamespace

import pytest
from django.http import QueryDict

from panel.auth import AuthEvent, Session
from panel.backends import SESSION_KEY
from panel.decorators import MSG_SIN_PERMISO, _persistir_tokens
from panel.errors import StoreError
from panel.views import LISTADOS, MSG_SIN_CARRERAS, filtrar_filas

from .fakes import iniciar_sesion, mensajes, sesion_cliente

DESCRIPCION = "Forma profesionales capaces de diseñar e implementar sistemas de información."

CARRERAS = [
    {"id": "c2", "nombre": "Arquitectura", "semestres": 10, "activa": False},
    {"id": "c1", "nombre": "Ingeniería Electrónica", "semestres": 8, "activa": True},
    {"id": "c3", "nombre": "Agronomía", "semestres": 10, "activa": True},
]


def _error_fk():
    return StoreError('update or delete on table "carreras" violates foreign key constraint', kind="fk", code="23503")


@pytest.fixture
def admin(supabase):
    supabase.agregar_admin()
    return supabase


@pytest.fixture
def cliente(async_client, admin):
    iniciar_sesion(async_client, admin)
    return async_client


@pytest.fixture
def con_carreras(admin):
    admin.store.tablas["carreras"] = [dict(c) for c in CARRERAS]
    return admin


class TestAcceso:
    async def test_raiz_redirige_al_login(self, async_client):
        response = await async_client.get("/")
        assert response.status_code == 302
        assert response.url == "/admin/login/"

    async def test_sin_sesion_redirige_al_login(self, async_client, supabase):
        response = await async_client.get("/admin/carreras/")
        assert response.status_code == 302
        assert response.url == "/admin/login/?next=%2Fadmin%2Fcarreras%2F"

    async def test_sesion_revocada_redirige_y_limpia(self, cliente, admin):
        admin.tokens.clear()
        response = await cliente.get("/admin/")
        assert response.status_code == 302
        assert response.url.startswith("/admin/login/")
        assert SESSION_KEY not in sesion_cliente(cliente)

    async def test_perfil_desactivado_con_sesion_abierta(self, cliente, admin):
        admin.store.filas("perfiles_administradores")[0]["activo"] = False
        response = await cliente.get("/admin/")
        assert response.status_code == 302
        assert ("sign_out",) in admin.calls

    async def test_dashboard_autorizado(self, cliente, admin):
        response = await cliente.get("/admin/")
        assert response.status_code == 200
        assert response.context["stats"] == {"carreras": 0, "docentes": 0, "eventos": 0}
        assert "no-store" in response["Cache-Control"]

    async def test_listado_sin_cache(self, cliente, con_carreras):
        response = await cliente.get("/admin/carreras/")
        assert response.status_code == 200
        assert "no-store" in response["Cache-Control"]
        assert response["Pragma"] == "no-cache"

    async def test_viewer_no_puede_crear(self, async_client, admin):
        admin.agregar_admin("lector@ueb.edu.bo", rol="viewer", nombre="Lucía Lectora")
        iniciar_sesion(async_client, admin, "lector@ueb.edu.bo")

        listado = await async_client.get("/admin/carreras/")
        assert listado.status_code == 200
        assert listado.context["crear_url"] is None

        response = await async_client.get("/admin/carreras/crear/")
        assert response.status_code == 302
        assert response.url == "/admin/"
        assert mensajes(response) == [MSG_SIN_PERMISO]

    async def test_editor_no_gestiona_administradores(self, async_client, admin):
        admin.agregar_admin("editor@ueb.edu.bo", rol="editor")
        iniciar_sesion(async_client, admin, "editor@ueb.edu.bo")
        response = await async_client.get("/admin/administradores/")
        assert response.status_code == 302
        assert response.url == "/admin/"


class TestLogin:
    async def test_login_valido(self, async_client, admin):
        response = await async_client.post(
            "/admin/login/", {"email": "admin@ueb.edu.bo", "password": "secreto123"}
        )

        assert response.status_code == 302
        assert response.url == "/admin/"
        assert mensajes(response) == ["Bienvenido, Ana Administradora"]
        assert admin.store.filas("perfiles_administradores")[0]["ultimo_acceso"] is not None
        assert sesion_cliente(async_client)[SESSION_KEY]["email"] == "admin@ueb.edu.bo"

        dashboard = await async_client.get("/admin/")
        assert dashboard.status_code == 200

    async def test_login_inactivo(self, async_client, supabase):
        supabase.agregar_admin(activo=False)
        response = await async_client.post(
            "/admin/login/", {"email": "admin@ueb.edu.bo", "password": "secreto123"}
        )
        assert response.status_code == 200
        assert mensajes(response) == ["Tu cuenta está desactivada. Contacta al administrador"]
        assert ("sign_out",) in supabase.calls
        assert SESSION_KEY not in sesion_cliente(async_client)

    async def test_credenciales_incorrectas(self, async_client, admin):
        response = await async_client.post("/admin/login/", {"email": "admin@ueb.edu.bo", "password": "x"})
        assert response.status_code == 200
        assert mensajes(response) == ["Correo electrónico o contraseña incorrectos"]
        assert response.context["email"] == "admin@ueb.edu.bo"

    async def test_campos_vacios(self, async_client, admin):
        response = await async_client.post("/admin/login/", {"email": "", "password": ""})
        assert mensajes(response) == ["Por favor completa todos los campos"]
        assert admin.calls == []

    async def test_email_invalido(self, async_client, admin):
        response = await async_client.post("/admin/login/", {"email": "admin", "password": "secreto123"})
        assert mensajes(response) == ["Por favor, ingresa un correo electrónico válido"]
        assert admin.calls == []

    @pytest.mark.parametrize(
        "siguiente, destino",
        [("/admin/carreras/", "/admin/carreras/"), ("https://evil.example.com/", "/admin/")],
    )
    async def test_respeta_next_seguro(self, async_client, admin, siguiente, destino):
        response = await async_client.post(
            f"/admin/login/?next={siguiente}", {"email": "admin@ueb.edu.bo", "password": "secreto123"}
        )
        assert response.url == destino

    async def test_con_sesion_va_al_dashboard(self, cliente):
        response = await cliente.get("/admin/login/")
        assert response.status_code == 302
        assert response.url == "/admin/"

    async def test_logout(self, cliente, admin):
        response = await cliente.post("/admin/logout/")
        assert response.status_code == 302
        assert response.url == "/admin/login/"
        assert admin.tokens == {}
        assert SESSION_KEY not in sesion_cliente(cliente)

        despues = await cliente.get("/admin/")
        assert despues.status_code == 302


class TestCarreras:
    async def test_descripcion_corta(self, cliente, admin):
        response = await cliente.post("/admin/carreras/crear/", {
            "nombre": "Ingeniería de Sistemas", "slug": "", "descripcion": "Muy corta.",
            "duracion": "5 años", "semestres": "10", "video_youtube": "", "activa": "on",
        })
        assert response.status_code == 200
        assert mensajes(response) == ["La descripción debe tener al menos 50 caracteres"]
        assert admin.store.escrituras() == []
        assert response.context["draft"]["descripcion"] == "Muy corta."

    async def test_crear(self, cliente, admin):
        response = await cliente.post("/admin/carreras/crear/", {
            "nombre": "Ingeniería de Sistemas", "slug": "", "descripcion": DESCRIPCION,
            "duracion": "5 años", "semestres": "10", "video_youtube": "https://youtu.be/dQw4w9WgXcQ",
            "activa": "on",
        })
        assert response.status_code == 302
        assert response.url == "/admin/carreras/"
        assert mensajes(response) == ["Carrera creada correctamente"]
        [fila] = admin.store.filas("carreras")
        assert fila["slug"] == "ingenieria-de-sistemas"
        assert fila["video_youtube"] == "dQw4w9WgXcQ"
        assert fila["activa"] is True

    async def test_formulario_con_envio_unico(self, cliente, admin):
        response = await cliente.get("/admin/carreras/crear/")
        html = response.content.decode()
        assert '<form method="post" enctype="multipart/form-data" novalidate data-envio-unico>' in html
        assert 'form.matches("form[data-envio-unico]")' in html

    async def test_post_repetido_mientras_guarda_se_ignora(self, cliente, admin):
        datos = {
            "nombre": "Ingeniería de Sistemas", "slug": "", "descripcion": DESCRIPCION,
            "duracion": "5 años", "semestres": "10", "video_youtube": "", "activa": "on",
        }
        insert = admin.store.insert
        en_insert = asyncio.Event()
        liberar = asyncio.Event()

        async def insert_lento(tabla, filas):
            en_insert.set()
            await liberar.wait()
            return await insert(tabla, filas)

        admin.store.insert = insert_lento
        primero = asyncio.ensure_future(cliente.post("/admin/carreras/crear/", datos))
        await asyncio.wait_for(en_insert.wait(), 5)

        segundo = await asyncio.wait_for(cliente.post("/admin/carreras/crear/", datos), 5)
        liberar.set()
        primero = await primero

        assert segundo.status_code == 200
        assert primero.status_code == 302
        assert len(admin.store.filas("carreras")) == 1

    async def test_evento_con_fecha_mal_formada(self, cliente, admin):
        response = await cliente.post("/admin/eventos/crear/", {
            "titulo": "Feria de ciencias", "descripcion": "Exposición de proyectos de los estudiantes",
            "fecha_inicio": "01/05/2024 10:00", "fecha_fin": "", "ubicacion": "Auditorio central",
            "tipo": "Académico", "activo": "on",
        })
        assert response.status_code == 200
        assert mensajes(response) == ["La fecha y hora deben tener el formato AAAA-MM-DD HH:MM"]
        assert admin.store.escrituras() == []

    async def test_editar_muestra_el_registro(self, cliente, con_carreras):
        response = await cliente.get("/admin/carreras/editar/c1/")
        assert response.status_code == 200
        assert response.context["editando"] is True
        assert response.context["draft"]["nombre"] == "Ingeniería Electrónica"

    async def test_editar_inexistente(self, cliente, con_carreras):
        response = await cliente.get("/admin/carreras/editar/c9/")
        assert response.status_code == 200
        assert response.context["draft"].cargando is True
        assert mensajes(response) == ["Error al cargar la carrera"]

    async def test_eliminar(self, cliente, con_carreras):
        response = await cliente.post("/admin/carreras/eliminar/c2/")
        assert response.status_code == 302
        assert response.url == "/admin/carreras/"
        assert mensajes(response) == ["Carrera eliminada correctamente"]
        assert [c["id"] for c in con_carreras.store.filas("carreras")] == ["c1", "c3"]

    async def test_eliminar_requiere_post(self, cliente, con_carreras):
        response = await cliente.get("/admin/carreras/eliminar/c2/")
        assert response.status_code == 405

    async def test_error_al_eliminar(self, cliente, con_carreras):
        con_carreras.store.fallas["delete"] = _error_fk()
        response = await cliente.post("/admin/carreras/eliminar/c1/")
        assert mensajes(response) == ["Error al eliminar la carrera"]

    async def test_filtro_por_estado(self, cliente, con_carreras):
        response = await cliente.get("/admin/carreras/", {"estado": "inactivos"})
        assert [f["datos"]["id"] for f in response.context["filas"]] == ["c2"]


class TestPorCarrera:
    async def test_sin_carrera_va_a_la_primera(self, cliente, con_carreras):
        response = await cliente.get("/admin/perfil-egresado/")
        assert response.status_code == 302
        assert response.url == "/admin/perfil-egresado/c3/"

    async def test_sin_carreras(self, cliente, admin):
        response = await cliente.get("/admin/ambitos-laborales/")
        assert response.status_code == 200
        assert mensajes(response) == [MSG_SIN_CARRERAS]
        assert response.context["sin_carreras"] is True

    async def test_listado_filtra_por_carrera(self, cliente, con_carreras):
        con_carreras.store.tablas["perfil_egresado"] = [
            {"id": "p1", "carrera_id": "c1", "competencia": "Diseñar circuitos", "orden": 2},
            {"id": "p2", "carrera_id": "c3", "competencia": "Manejar cultivos", "orden": 1},
            {"id": "p3", "carrera_id": "c1", "competencia": "Programar microcontroladores", "orden": 1},
        ]
        response = await cliente.get("/admin/perfil-egresado/c1/")
        assert [f["datos"]["id"] for f in response.context["filas"]] == ["p3", "p1"]
        assert response.context["masivo_url"] == "/admin/perfil-egresado/c1/agregar-masivo/"
        assert response.context["crear_url"] == "/admin/perfil-egresado/c1/crear/"

    async def test_plan_de_estudios_por_semestre(self, cliente, con_carreras):
        con_carreras.store.tablas["plan_estudios"] = [
            {"id": "m1", "carrera_id": "c1", "semestre_numero": 1, "orden": 1, "materia_nombre": "Cálculo I",
             "categoria": "Matemática", "horas_teoria": 4, "horas_practica": 2, "materia_color": "#2563eb"},
            {"id": "m2", "carrera_id": "c1", "semestre_numero": 2, "orden": 1, "materia_nombre": "Circuitos",
             "categoria": "Electrónica", "horas_teoria": 3, "horas_practica": 3, "materia_color": "#10b981"},
        ]
        con_carreras.store.rpcs["calcular_desglose_carrera"] = {
            "porcentaje_teoria": 58.3, "porcentaje_practica": 41.7, "desglose_categoria": {"Matemática": 50},
            "total_anos": 4, "total_semestres": 8, "total_horas_teoria": 7, "total_horas_practica": 5,
        }
        response = await cliente.get("/admin/plan-estudios/c1/")
        assert response.status_code == 200
        semestres = response.context["semestres"]
        assert len(semestres) == 8
        assert [f["datos"]["id"] for f in semestres[0][1]] == ["m1"]
        assert [f["datos"]["id"] for f in semestres[1][1]] == ["m2"]
        assert response.context["desglose"].total_horas == 12

    async def test_plan_sin_desglose_no_notifica(self, cliente, con_carreras):
        con_carreras.store.fallas["rpc"] = _error_fk()
        response = await cliente.get("/admin/plan-estudios/c1/")
        assert response.status_code == 200
        assert response.context["desglose"] is None
        assert mensajes(response) == []

    async def test_crear_materia_en_la_carrera_de_la_ruta(self, cliente, con_carreras):
        response = await cliente.post("/admin/plan-estudios/c1/crear/", {
            "carrera_id": "c3", "semestre_numero": "2", "materia_nombre": "Circuitos I",
            "materia_color": "#10b981", "horas_teoria": "3", "horas_practica": "2",
            "categoria": "Electrónica", "orden": "1",
        })
        assert response.status_code == 302
        assert response.url == "/admin/plan-estudios/c1/"
        [materia] = con_carreras.store.filas("plan_estudios")
        assert materia["carrera_id"] == "c1"


class TestMasivo:
    URL = "/admin/perfil-egresado/c1/agregar-masivo/"

    def _filas(self, *textos, accion="guardar"):
        datos = {"total_filas": str(len(textos)), "accion": accion}
        for i, texto in enumerate(textos):
            datos[f"filas-{i}-competencia"] = texto
            datos[f"filas-{i}-orden"] = str(i)
        return datos

    async def test_formulario_inicial(self, cliente, con_carreras):
        response = await cliente.get(self.URL)
        assert response.status_code == 200
        assert response.context["total_filas"] == 1
        assert response.context["carrera"]["nombre"] == "Ingeniería Electrónica"

    async def test_fila_vacia_rechaza_todo(self, cliente, con_carreras):
        response = await cliente.post(self.URL, self._filas("Diseñar circuitos", "", "Gestionar proyectos"))
        assert response.status_code == 200
        assert mensajes(response) == ["Todas las competencias deben tener un texto"]
        assert con_carreras.store.escrituras() == []
        assert response.context["total_filas"] == 3

    async def test_guardar(self, cliente, con_carreras):
        response = await cliente.post(self.URL, self._filas("Diseñar circuitos", "Gestionar proyectos"))
        assert response.status_code == 302
        assert response.url == "/admin/perfil-egresado/c1/"
        assert mensajes(response) == ["2 competencia(s) agregada(s) correctamente"]
        [(_, _, filas)] = con_carreras.store.escrituras()
        assert [f["orden"] for f in filas] == [0, 1]

    async def test_agregar_y_quitar_filas(self, cliente, con_carreras):
        response = await cliente.post(self.URL, self._filas("Diseñar circuitos", accion="agregar"))
        assert response.context["total_filas"] == 2

        response = await cliente.post(self.URL, self._filas("Diseñar circuitos", accion="quitar-0"))
        assert response.context["total_filas"] == 1
        assert mensajes(response) == ["Debe haber al menos una competencia"]

    async def test_quitar_indice_negativo_no_toca_las_filas(self, cliente, con_carreras):
        response = await cliente.post(
            self.URL, self._filas("Diseñar circuitos", "Gestionar proyectos", accion="quitar--1")
        )
        assert response.status_code == 200
        assert response.context["total_filas"] == 2
        assert mensajes(response) == []

    async def test_carrera_inexistente(self, cliente, con_carreras):
        response = await cliente.get("/admin/perfil-egresado/c9/agregar-masivo/")
        assert response.status_code == 302
        assert response.url == "/admin/perfil-egresado/c9/"
        assert mensajes(response) == ["Error al cargar la carrera"]

    async def test_ambitos_usa_su_propia_configuracion(self, cliente, con_carreras):
        response = await cliente.get("/admin/ambitos-laborales/c1/agregar-masivo/")
        assert response.status_code == 200
        assert response.context["config"].titulo == "Agregar ámbitos laborales"


class TestConfiguracion:
    async def test_sin_registro_muestra_valores_por_defecto(self, cliente, admin):
        response = await cliente.get("/admin/configuracion/")
        assert response.status_code == 200
        assert response.context["draft"]["titulo_hero"] == "Facultad de Ciencia y Tecnología"

    async def test_guardar_crea_el_registro(self, cliente, admin):
        response = await cliente.post("/admin/configuracion/", {
            "titulo_hero": "Facultad de Ciencia y Tecnología",
            "subtitulo_hero": "Universidad Evangélica Boliviana",
            "descripcion_general": DESCRIPCION,
            "video_youtube": "",
            "activo": "on",
        })
        assert response.status_code == 302
        assert response.url == "/admin/configuracion/"
        assert mensajes(response) == ["Configuración guardada correctamente"]
        [fila] = admin.store.filas("configuracion_facultad")
        assert fila["video_youtube"] is None

    async def test_guardar_actualiza_el_existente(self, cliente, admin):
        admin.store.tablas["configuracion_facultad"] = [{
            "id": "k1", "titulo_hero": "FCyT", "subtitulo_hero": "UEB", "descripcion_general": DESCRIPCION,
            "activo": True,
        }]
        await cliente.post("/admin/configuracion/", {
            "titulo_hero": "FCyT UEB", "subtitulo_hero": "UEB", "descripcion_general": DESCRIPCION,
            "activo": "on",
        })
        [(op, _, (registro_id, cambios))] = admin.store.escrituras()
        assert (op, registro_id, cambios["titulo_hero"]) == ("update", "k1", "FCyT UEB")


class TestAdministradores:
    async def test_listado_sin_eliminar_la_propia_cuenta(self, cliente, admin):
        otro = admin.agregar_admin("editor@ueb.edu.bo", rol="editor", nombre="Eduardo Editor")
        response = await cliente.get("/admin/administradores/")
        filas = {f["datos"]["id"]: f for f in response.context["filas"]}
        propio = next(i for i in filas if i != otro)
        assert filas[propio]["eliminar"] is None
        assert filas[otro]["eliminar"] == f"/admin/administradores/eliminar/{otro}/"

    async def test_no_puede_eliminarse(self, cliente, admin):
        propio = admin.usuarios["admin@ueb.edu.bo"]["id"]
        response = await cliente.post(f"/admin/administradores/eliminar/{propio}/")
        assert response.url == "/admin/administradores/"
        assert mensajes(response) == ["No puedes eliminar tu propia cuenta"]
        assert admin.identidades_eliminadas == []

    async def test_crear_administrador(self, cliente, admin):
        response = await cliente.post("/admin/administradores/crear/", {
            "email": "nuevo@ueb.edu.bo", "password": "segura123", "nombre_completo": "Nora Nueva",
            "rol": "viewer", "activo": "on",
        })
        assert response.status_code == 302
        assert response.url == "/admin/administradores/"
        assert "nuevo@ueb.edu.bo" in admin.usuarios

    async def test_propia_cuenta_ignora_rol_del_post(self, cliente, admin):
        propio = admin.usuarios["admin@ueb.edu.bo"]["id"]
        response = await cliente.post(f"/admin/administradores/editar/{propio}/", {
            "nombre_completo": "Ana A.", "rol": "viewer", "nueva_password": "", "confirmar_password": "",
        })
        assert response.status_code == 302
        fila = admin.store.filas("perfiles_administradores")[0]
        assert (fila["nombre_completo"], fila["rol"], fila["activo"]) == ("Ana A.", "admin", True)


class TestUtilidadesDeVista:
    def test_filtrar_filas(self):
        filas = [
            {"id": 1, "titulo": "Feria de ciencias", "descripcion": "", "ubicacion": "", "tipo": "Académico",
             "activo": True},
            {"id": 2, "titulo": "Torneo", "descripcion": "fútbol", "ubicacion": "", "tipo": "Deportivo",
             "activo": True},
            {"id": 3, "titulo": "Feria cultural", "descripcion": "", "ubicacion": "", "tipo": "Cultural",
             "activo": False},
        ]
        params = QueryDict("q=feria&estado=activos")
        assert [f["id"] for f in filtrar_filas(filas, LISTADOS["eventos"], params)] == [1]
        params = QueryDict("tipo=Cultural")
        assert [f["id"] for f in filtrar_filas(filas, LISTADOS["eventos"], params)] == [3]

    def test_tokens_renovados_se_guardan_en_la_sesion(self):
        request = SimpleNamespace(session={})
        callback = _persistir_tokens(request)
        nueva = Session(access_token="a2", refresh_token="r2", user_id="u1")

        callback(AuthEvent.SIGNED_IN, nueva)
        assert request.session == {}

        callback(AuthEvent.TOKEN_REFRESHED, nueva)
        assert request.session[SESSION_KEY]["access_token"] == "a2"
