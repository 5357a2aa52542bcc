# config/settings.py
from pathlib import Path
import os

# === Paths ===
BASE_DIR = Path(__file__).resolve().parent.parent

# === Seguridad / modo ===
SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
DEBUG = os.environ.get("DEBUG", "False").lower() == "true"

# Hostname que expone Render (si existe)
RENDER_HOST = os.environ.get("RENDER_EXTERNAL_HOSTNAME", "").strip()

ALLOWED_HOSTS = ["localhost", "127.0.0.1"]
if RENDER_HOST:
    ALLOWED_HOSTS.append(RENDER_HOST)

# Django 4/5 exige esquema en CSRF_TRUSTED_ORIGINS
CSRF_TRUSTED_ORIGINS = [f"https://{RENDER_HOST}"] if RENDER_HOST else []

# === Apps ===
INSTALLED_APPS = [
    # Django
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Panel
    "panel",
]

# === Middleware (WhiteNoise justo después de Security) ===
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "panel.middleware.NoCacheForAdminHTMLMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# === Base de datos ===
# Toda la persistencia va a Supabase (REST + Auth); Django no usa base local.
DATABASES = {}

# Sesión y mensajes viajan firmados en cookies
SESSION_ENGINE = "django.contrib.sessions.backends.signed_cookies"
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_AGE = int(os.environ.get("SESSION_COOKIE_AGE", str(60 * 60 * 8)))
MESSAGE_STORAGE = "django.contrib.messages.storage.cookie.CookieStorage"

# === Supabase ===
SUPABASE_URL = os.environ.get("SUPABASE_URL", "").strip()
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "").strip()
# Sólo para crear/eliminar identidades de administradores
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "").strip()

# === Panel ===
PANEL_GUARD_TIMEOUT = float(os.environ.get("PANEL_GUARD_TIMEOUT", "10"))
PANEL_BACKEND_FACTORY = os.environ.get("PANEL_BACKEND_FACTORY", "panel.backends.supabase_backend")
PANEL_IMAGE_MAX_BYTES = int(os.environ.get("PANEL_IMAGE_MAX_BYTES", str(1000 * 1000)))

# === i18n / TZ ===
LANGUAGE_CODE = "es"
TIME_ZONE = "America/La_Paz"
USE_I18N = True
USE_TZ = True

# === Estáticos ===
STATIC_URL = "/static/"
STATICFILES_DIRS = [BASE_DIR / "static"] if (BASE_DIR / "static").exists() else []
STATIC_ROOT = BASE_DIR / "staticfiles"
STORAGES = {
    "staticfiles": {
        "BACKEND": (
            "whitenoise.storage.CompressedManifestStaticFilesStorage"
            if not DEBUG
            else "whitenoise.storage.CompressedStaticFilesStorage"
        ),
    },
}

# Imágenes en data URL: el POST puede superar el límite por defecto
DATA_UPLOAD_MAX_MEMORY_SIZE = PANEL_IMAGE_MAX_BYTES * 12

# === Logging ===
PANEL_LOG_LEVEL = os.environ.get("PANEL_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "[{asctime}] {levelname} {name}: {message}", "style": "{"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING"},
        "panel": {"handlers": ["console"], "level": PANEL_LOG_LEVEL, "propagate": False},
    },
}

# === Seguridad extra en prod ===
if not DEBUG:
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SECURE_SSL_REDIRECT = True
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    SECURE_HSTS_SECONDS = 60
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True
