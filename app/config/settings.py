"""
Django settings for config project.
"""
import os
from pathlib import Path
from django.core.exceptions import ImproperlyConfigured

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# ==========================================
# 1. CORE SETTINGS
# ==========================================

# Lee la secret key del entorno, o usa una insegura solo si no existe (para dev)
SECRET_KEY = os.environ.get('SECRET_KEY', 'django-insecure-dev-key-change-in-prod')

# DEBUG debe ser True solo si la variable es 'True'
DEBUG = os.environ.get('DEBUG', 'True') == 'True'

# Hosts permitidos separados por coma
ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', 'localhost,127.0.0.1,0.0.0.0').split(',')

if not DEBUG and SECRET_KEY.startswith('django-insecure'):
    raise ImproperlyConfigured("Define SECRET_KEY en el entorno para producción.")


# ==========================================
# 2. INSTALLED APPS
# ==========================================
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",

    # Local Apps (Módulos)
    "inventory",
    "sales",
    "finance",
]


# ==========================================
# 3. DATABASE (SQLite en dev, PostgreSQL en prod)
# ==========================================
DB_ENGINE = os.environ.get('DB_ENGINE', 'sqlite').lower()

if DB_ENGINE == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ.get('POSTGRES_DB', 'land_sales_db'),
            'USER': os.environ.get('POSTGRES_USER', 'admin'),
            'PASSWORD': os.environ.get('POSTGRES_PASSWORD', 'admin'),
            'HOST': os.environ.get('DB_HOST', 'db'),
            'PORT': os.environ.get('DB_PORT', '5432'),
        }
    }
elif DB_ENGINE == 'sqlite':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.environ.get('SQLITE_PATH', str(BASE_DIR / 'db.sqlite3')),
        }
    }
else:
    raise ImproperlyConfigured(f"DB_ENGINE no soportado: {DB_ENGINE!r} (usa 'sqlite' o 'postgresql').")


# ==========================================
# 4. LOCALIZATION
# ==========================================
LANGUAGE_CODE = 'es'
TIME_ZONE = os.environ.get('TIME_ZONE', 'Africa/Tunis')
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ==========================================
# 5. VENTAS Y CONCILIACIÓN
# ==========================================
# Máximo de cuotas mensuales en una oferta por número de meses
INSTALLMENT_MAX_MONTHS = int(os.environ.get('INSTALLMENT_MAX_MONTHS', '120'))

# Diferencia máxima entre depósito + anticipo + cuotas y el precio de venta
RECONCILIATION_TOLERANCE = os.environ.get('RECONCILIATION_TOLERANCE', '0.01')


# ==========================================
# 6. LOGGING
# ==========================================
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'land_sales': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'land_sales',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        app: {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False}
        for app in ('inventory', 'sales', 'finance')
    },
}
