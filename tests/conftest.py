import pytest

from .fakes import FakeSupabase, instalar


@pytest.fixture
def supabase():
    """Supabase en memoria instalado como backend de las vistas."""
    servidor = FakeSupabase()
    instalar(servidor)
    yield servidor
    instalar(None)


class Notificaciones(list):
    """Notificador que acumula (nivel, texto)."""

    def __call__(self, nivel, texto):
        self.append((nivel, texto))

    def textos(self, nivel=None):
        return [t for n, t in self if nivel is None or n == nivel]


@pytest.fixture
def notificaciones():
    return Notificaciones()
