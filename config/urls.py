from django.urls import include, path
from django.views.generic import RedirectView

urlpatterns = [
    path("", RedirectView.as_view(pattern_name="panel:login", permanent=False)),
    path("admin/", include("panel.urls")),
]
