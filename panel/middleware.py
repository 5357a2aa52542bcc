# panel/middleware.py
from asgiref.sync import iscoroutinefunction, markcoroutinefunction
from django.utils.cache import patch_cache_control

from .backends import SESSION_KEY


class NoCacheForAdminHTMLMiddleware:
    """
    Evita que las páginas HTML del panel servidas con sesión se guarden en caché.
    Resultado: al cerrar sesión y presionar 'Atrás', el navegador no muestra páginas protegidas.
    """
    sync_capable = True
    async_capable = True

    def __init__(self, get_response):
        self.get_response = get_response
        if iscoroutinefunction(self.get_response):
            markcoroutinefunction(self)

    def __call__(self, request):
        if iscoroutinefunction(self):
            return self.__acall__(request)
        return self._procesar(request, self.get_response(request))

    async def __acall__(self, request):
        return self._procesar(request, await self.get_response(request))

    def _procesar(self, request, response):
        ctype = response.get("Content-Type", "")
        if SESSION_KEY in request.session and ctype.startswith("text/html"):
            patch_cache_control(
                response,
                no_cache=True,
                no_store=True,
                must_revalidate=True,
                max_age=0,
            )
            response["Pragma"] = "no-cache"
            response["Expires"] = "0"
        return response
