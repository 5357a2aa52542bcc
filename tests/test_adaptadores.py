"""Adaptadores de Supabase (almacén y auth) contra clientes falsos."""

from types import SimpleNamespace

import httpx
import pytest
from postgrest.exceptions import APIError

from panel.auth import AuthEvent, Session, Subscription, SupabaseAuthProvider, _auth_error
from panel.errors import AuthError, StoreError, map_store_error, store_error_from
from panel.store import SupabaseStore


class Consulta:
    """Query builder encadenable que registra cada llamada."""

    def __init__(self, registro, data=None, error=None):
        self.registro = registro
        self.data = data
        self.error = error

    def __getattr__(self, nombre):
        def metodo(*args, **kwargs):
            self.registro.append((nombre, args, kwargs))
            return self

        return metodo

    async def execute(self):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


class ClienteFalso:
    def __init__(self, data=None, error=None):
        self.registro = []
        self.data = data
        self.error = error

    def table(self, nombre):
        self.registro.append(("table", (nombre,), {}))
        return Consulta(self.registro, self.data, self.error)

    def rpc(self, funcion, params):
        self.registro.append(("rpc", (funcion, params), {}))
        return Consulta(self.registro, self.data, self.error)


def _api_error(code, message="error"):
    return APIError({"message": message, "code": code, "details": None, "hint": None})


class TestStore:
    async def test_select_aplica_filtros_orden_y_limite(self):
        cliente = ClienteFalso(data=[{"id": 1}])
        filas = await SupabaseStore(cliente).select(
            "eventos",
            filtros={"activo": True, "fecha_inicio": ("gte", "2026-01-01")},
            orden=[("fecha_inicio", False), ("titulo", True)],
            limite=5,
        )
        assert filas == [{"id": 1}]
        assert cliente.registro == [
            ("table", ("eventos",), {}),
            ("select", ("*",), {}),
            ("eq", ("activo", True), {}),
            ("gte", ("fecha_inicio", "2026-01-01"), {}),
            ("order", ("fecha_inicio",), {"desc": True}),
            ("order", ("titulo",), {"desc": False}),
            ("limit", (5,), {}),
        ]

    async def test_operador_no_soportado(self):
        with pytest.raises(ValueError):
            await SupabaseStore(ClienteFalso()).select("eventos", filtros={"titulo": ("like", "%x%")})

    async def test_get_one_sin_filas(self):
        with pytest.raises(StoreError) as excinfo:
            await SupabaseStore(ClienteFalso(data=[])).get_one("carreras", "c1")
        assert excinfo.value.kind == "not_found"

    async def test_error_de_postgrest_conserva_el_mensaje(self):
        error = _api_error("23505", 'duplicate key value violates unique constraint "carreras_slug_key"')
        with pytest.raises(StoreError) as excinfo:
            await SupabaseStore(ClienteFalso(error=error)).insert("carreras", {"slug": "x"})
        assert excinfo.value.kind == "unique"
        assert excinfo.value.code == "23505"
        assert excinfo.value.message == 'duplicate key value violates unique constraint "carreras_slug_key"'

    async def test_error_de_red(self):
        cliente = ClienteFalso(error=httpx.ConnectError("connection refused"))
        with pytest.raises(StoreError) as excinfo:
            await SupabaseStore(cliente).delete("carreras", "c1")
        assert excinfo.value.message == "No se pudo contactar a la base de datos"

    async def test_rpc(self):
        cliente = ClienteFalso(data={"total_anos": 5})
        assert await SupabaseStore(cliente).rpc("calcular_desglose_carrera", {"p_carrera_id": "c1"}) == {
            "total_anos": 5
        }
        assert cliente.registro[0] == ("rpc", ("calcular_desglose_carrera", {"p_carrera_id": "c1"}), {})


class TestMapeoDeErrores:
    @pytest.mark.parametrize(
        "code, kind",
        [("23505", "unique"), ("23503", "fk"), ("23502", "not_null"), ("23514", "check"),
         ("PGRST116", "not_found"), ("42P01", "other")],
    )
    def test_codigos(self, code, kind):
        assert map_store_error(_api_error(code)) == kind

    def test_codigo_en_la_causa(self):
        try:
            try:
                raise _api_error("23503")
            except APIError as exc:
                raise RuntimeError("envuelto") from exc
        except RuntimeError as exc:
            assert map_store_error(exc) == "fk"

    def test_mensaje_de_respaldo(self):
        assert store_error_from(Exception(), fallback="sin detalle").message == "sin detalle"

    def test_str_sin_mensaje(self):
        assert str(StoreError()) == "Error al comunicarse con la base de datos"
        assert StoreError().message is None


class ErrorProveedor(Exception):
    def __init__(self, message, code=None, status=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


def _sesion_supabase(token="access", user_id="u1"):
    return SimpleNamespace(
        access_token=token,
        refresh_token=f"refresh-{token}",
        expires_at=1_900_000_000,
        user=SimpleNamespace(id=user_id, email="admin@ueb.edu.bo"),
    )


class AuthClienteFalso:
    def __init__(self):
        self.callbacks = []
        self.set_session_args = None

    async def sign_in_with_password(self, credenciales):
        sesion = _sesion_supabase()
        return SimpleNamespace(session=sesion, user=sesion.user)

    async def set_session(self, access_token, refresh_token):
        self.set_session_args = (access_token, refresh_token)
        return SimpleNamespace(session=_sesion_supabase("renovado"))

    async def sign_out(self):
        pass

    def on_auth_state_change(self, callback):
        self.callbacks.append(callback)
        return SimpleNamespace(unsubscribe=lambda: self.callbacks.remove(callback))


class TestAuth:
    @pytest.mark.parametrize(
        "error, kind",
        [
            (ErrorProveedor("Invalid login credentials", status=400), "invalid_credentials"),
            (ErrorProveedor("Email not confirmed", status=400), "email_not_confirmed"),
            (ErrorProveedor("nope", code="user_not_found", status=404), "user_not_found"),
            (ErrorProveedor("missing grant_type", status=400), "bad_request"),
            (ErrorProveedor("Internal error", status=500), "unknown"),
        ],
    )
    def test_traduccion_de_errores(self, error, kind):
        assert _auth_error(error).kind == kind

    def test_error_de_red(self):
        error = _auth_error(httpx.ConnectError("refused"))
        assert error.kind == "unknown"
        assert error.message == "No se pudo contactar al servicio de autenticación"

    async def test_sign_in_y_renovacion(self):
        cliente = SimpleNamespace(auth=AuthClienteFalso())
        auth = SupabaseAuthProvider(cliente)

        session = await auth.sign_in("admin@ueb.edu.bo", "secreto123")
        assert session.user_id == "u1"
        assert auth.session == session

        renovada = await auth.get_session()
        assert cliente.auth.set_session_args == ("access", "refresh-access")
        assert renovada.access_token == "renovado"

        await auth.sign_out()
        assert auth.session is None

    async def test_sin_sesion_no_consulta_al_proveedor(self):
        cliente = SimpleNamespace(auth=AuthClienteFalso())
        assert await SupabaseAuthProvider(cliente).get_session() is None
        assert cliente.auth.set_session_args is None

    def test_notificaciones_con_sesion_propia(self):
        cliente = SimpleNamespace(auth=AuthClienteFalso())
        recibidos = []
        with SupabaseAuthProvider(cliente).on_auth_state_change(lambda e, s: recibidos.append((e, s))):
            cliente.auth.callbacks[0](AuthEvent.TOKEN_REFRESHED, _sesion_supabase("nuevo"))
        assert cliente.auth.callbacks == []
        [(evento, session)] = recibidos
        assert evento == "TOKEN_REFRESHED"
        assert isinstance(session, Session) and session.access_token == "nuevo"

    async def test_identidades_requieren_service_role(self):
        auth = SupabaseAuthProvider(SimpleNamespace(auth=AuthClienteFalso()))
        with pytest.raises(AuthError) as excinfo:
            await auth.create_identity("x@ueb.edu.bo", "secreto123")
        assert excinfo.value.kind == "not_configured"


class TestSesion:
    def test_dict_incompleto(self):
        assert Session.from_dict(None) is None
        assert Session.from_dict({"access_token": "a"}) is None

    def test_subscription_idempotente(self):
        llamadas = []
        sub = Subscription(lambda: llamadas.append(1))
        sub.unsubscribe()
        sub.unsubscribe()
        assert llamadas == [1]
        assert not sub.active
