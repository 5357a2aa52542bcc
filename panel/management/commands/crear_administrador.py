from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from panel.administradores import crear_administrador
from panel.backends import Backend, cliente_servicio
from panel.auth import SupabaseAuthProvider
from panel.errors import OrphanIdentityError, PanelError
from panel.models import ROL_ADMIN, ROLES
from panel.store import SupabaseStore


async def service_backend() -> Backend:
    """Cliente con service role: crea identidades y escribe el perfil sin RLS."""
    client = await cliente_servicio()

    async def _mismo_cliente():
        return client

    return Backend(
        auth=SupabaseAuthProvider(client, admin_client_factory=_mismo_cliente),
        store=SupabaseStore(client),
    )


class Command(BaseCommand):
    help = "Crea un administrador del panel (identidad en Supabase Auth + perfil)."

    def add_arguments(self, parser):
        parser.add_argument("--email", required=True, help="Correo del administrador.")
        parser.add_argument("--password", required=True, help="Contraseña (mínimo 8 caracteres).")
        parser.add_argument("--nombre", required=True, help="Nombre completo.")
        parser.add_argument("--rol", default=ROL_ADMIN, choices=sorted(ROLES), help="Rol (por defecto admin).")

    def handle(self, *args, **options):
        if not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise CommandError("Se requiere SUPABASE_SERVICE_ROLE_KEY para crear administradores.")

        email = options["email"].strip().lower()
        password = options["password"]
        if len(password) < 8:
            raise CommandError("La contraseña debe tener al menos 8 caracteres")

        try:
            perfil = async_to_sync(self._crear)(email, password, options["nombre"].strip(), options["rol"])
        except OrphanIdentityError as exc:
            raise CommandError(
                f"{exc.message}. La identidad {exc.identity_id} quedó sin perfil: elimínala desde Supabase."
            )
        except PanelError as exc:
            raise CommandError(f"No se pudo crear el administrador: {exc}")

        self.stdout.write(self.style.SUCCESS(
            f"[crear_administrador] {perfil.email} creado (rol {perfil.rol}, id {perfil.id})."
        ))

    async def _crear(self, email, password, nombre, rol):
        backend = await service_backend()
        return await crear_administrador(
            backend.store,
            backend.auth,
            email=email,
            password=password,
            nombre_completo=nombre,
            rol=rol,
        )
