"""
Django settings for BALADI project.
Delivery marketplace: orders, loyalty points and weekly settlements

Configured for:
- PostgreSQL (SQLite for development / tests)
- Redis/Celery (async tasks, weekly close)
- JWT Authentication (API)
"""

from pathlib import Path
from decouple import config, Csv
from datetime import timedelta
from decimal import Decimal

# ===========================================
# BASE CONFIGURATION
# ===========================================
BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = config('SECRET_KEY', default='dev-secret-key-change-in-production')
DEBUG = config('DEBUG', default=True, cast=bool)
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1,0.0.0.0', cast=Csv())

# ===========================================
# APPLICATION DEFINITION
# ===========================================
INSTALLED_APPS = [
    # Django Core
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third Party
    'rest_framework',
    'rest_framework_simplejwt',
    'corsheaders',
    'django_filters',
    'drf_spectacular',

    # BALADI Apps
    'core.apps.CoreConfig',
    'orders.apps.OrdersConfig',
    'loyalty.apps.LoyaltyConfig',
    'finance.apps.FinanceConfig',
    'reports.apps.ReportsConfig',
]


MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'baladi_core.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'baladi_core.wsgi.application'

# ===========================================
# DATABASE - PostgreSQL (SQLite by default)
# ===========================================
DB_ENGINE = config('DB_ENGINE', default='django.db.backends.sqlite3')

if DB_ENGINE == 'django.db.backends.sqlite3':
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': config('DB_NAME', default=str(BASE_DIR / 'db.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': config('DB_NAME', default='baladi_db'),
            'USER': config('DB_USER', default='baladi_user'),
            'PASSWORD': config('DB_PASSWORD', default=''),
            'HOST': config('DB_HOST', default='db'),
            'PORT': config('DB_PORT', default='5432'),
            'CONN_MAX_AGE': config('DB_CONN_MAX_AGE', default=60, cast=int),
        }
    }

# ===========================================
# CUSTOM USER MODEL
# ===========================================
AUTH_USER_MODEL = 'core.User'

# ===========================================
# PASSWORD VALIDATION
# ===========================================
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

# ===========================================
# INTERNATIONALIZATION (Egypt)
# ===========================================
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Africa/Cairo'
# Settlement weeks (Saturday 00:00 -> Friday 23:59:59) and the beat
# schedule both run on this clock, whatever the server timezone is.
SETTLEMENT_TIME_ZONE = config('SETTLEMENT_TIME_ZONE', default='Africa/Cairo')
USE_I18N = True
USE_TZ = True

# ===========================================
# STATIC FILES
# ===========================================
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# ===========================================
# DEFAULT PRIMARY KEY
# ===========================================
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ===========================================
# DJANGO REST FRAMEWORK
# ===========================================
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
        'rest_framework.filters.OrderingFilter',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
}

# ===========================================
# API DOCUMENTATION (drf-spectacular)
# ===========================================
SPECTACULAR_SETTINGS = {
    'TITLE': 'BALADI API',
    'DESCRIPTION': 'Orders, loyalty points and weekly settlements',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
}

# ===========================================
# JWT CONFIGURATION
# ===========================================
SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(hours=12),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
    'ROTATE_REFRESH_TOKENS': True,
    'AUTH_HEADER_TYPES': ('Bearer',),
}

# ===========================================
# CORS (Cross-Origin Resource Sharing)
# ===========================================
CORS_ALLOWED_ORIGINS = config(
    'CORS_ALLOWED_ORIGINS',
    default='http://localhost:3000,http://127.0.0.1:3000',
    cast=Csv()
)
CORS_ALLOW_CREDENTIALS = True

# ===========================================
# REDIS & CELERY CONFIGURATION
# ===========================================
REDIS_URL = config('REDIS_URL', default='')

# Cache (local memory when no Redis is configured)
if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.redis.RedisCache',
            'LOCATION': REDIS_URL,
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'baladi',
        }
    }

# Celery
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='redis://redis:6379/0')
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default='redis://redis:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = SETTLEMENT_TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = config('CELERY_TASK_ALWAYS_EAGER', default=False, cast=bool)

# Celery Beat Schedule (Periodic Tasks)
from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    # Close the settlement week right after Friday 23:59 (Saturday 00:05)
    'close-weekly-settlement': {
        'task': 'finance.tasks.close_weekly_settlement',
        'schedule': crontab(day_of_week='sat', hour=0, minute=5),
    },
    # Expire stale pending referrals once a day
    'expire-stale-referrals': {
        'task': 'loyalty.tasks.expire_stale_referrals',
        'schedule': crontab(hour=3, minute=0),
    },
}

# ===========================================
# BUSINESS RULES - COMMISSION & POINTS
# ===========================================
DEFAULT_COMMISSION_RATE = config('DEFAULT_COMMISSION_RATE', default='0.10', cast=Decimal)
MIN_COMMISSION_RATE = config('MIN_COMMISSION_RATE', default='0.05', cast=Decimal)
MAX_COMMISSION_RATE = config('MAX_COMMISSION_RATE', default='0.30', cast=Decimal)
POINTS_CURRENCY_PER_POINT = config('POINTS_CURRENCY_PER_POINT', default=100, cast=int)   # EGP per earned point
POINT_VALUE = config('POINT_VALUE', default='1.00', cast=Decimal)                        # EGP per redeemed point
REFERRAL_BONUS_POINTS = config('REFERRAL_BONUS_POINTS', default=2, cast=int)
REFERRAL_EXPIRY_DAYS = config('REFERRAL_EXPIRY_DAYS', default=90, cast=int)
# Personal commission, tracked separately from shop, rider and platform figures
PERSONAL_COMMISSION_STORE_RATE = config('PERSONAL_COMMISSION_STORE_RATE', default='0.05', cast=Decimal)
PERSONAL_COMMISSION_DELIVERY_RATE = config('PERSONAL_COMMISSION_DELIVERY_RATE', default='0.15', cast=Decimal)

# ===========================================
# BUSINESS RULES - ORDERS
# ===========================================
MAX_ITEMS_PER_ORDER = config('MAX_ITEMS_PER_ORDER', default=50, cast=int)
MIN_DELIVERY_ADDRESS_LENGTH = config('MIN_DELIVERY_ADDRESS_LENGTH', default=10, cast=int)
DEFAULT_DELIVERY_FEE = config('DEFAULT_DELIVERY_FEE', default='10.00', cast=Decimal)     # EGP

# ===========================================
# LOGGING CONFIGURATION
# ===========================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': config('DJANGO_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
        'celery': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
