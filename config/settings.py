from pathlib import Path
from datetime import timedelta
import os

BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'change-me')
DEBUG = os.environ.get('DEBUG', 'True') == 'True'

# ALLOWED_HOSTS configuration
# Can be overridden with ALLOWED_HOSTS env var (comma-separated list)
if allowed_hosts_env := os.environ.get('ALLOWED_HOSTS'):
    ALLOWED_HOSTS = [host.strip() for host in allowed_hosts_env.split(',')]
else:
    # Behind a load balancer that only forwards approved domains
    ALLOWED_HOSTS = ['*']

SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

INSTALLED_APPS = [
    'grappelli',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'django.contrib.postgres',
    'corsheaders',
    'rest_framework',
    'rest_framework_simplejwt',
    'ninja',
    'django_celery_beat',
    'django_celery_results',
    'venues',
    'api',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
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

WSGI_APPLICATION = 'config.wsgi.application'

DB_HOST = os.environ.get('DB_HOST', '')
DB_PORT = os.environ.get('DB_PORT', '5432')
DB_NAME = os.environ.get('DB_NAME', 'rinkside')
DB_USER = os.environ.get('DB_USER', 'rinkside')
DB_PASSWORD = os.environ.get('DB_PASSWORD', '')

# If no host specified, assume local peer authentication
if not DB_HOST:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': DB_NAME,
            'USER': DB_USER,
            'PASSWORD': '',  # Empty for peer auth
            'HOST': '',      # Unix socket
            'PORT': '',      # Default socket
        }
    }
else:
    # Remote database configuration
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': DB_NAME,
            'USER': DB_USER,
            'PASSWORD': DB_PASSWORD,
            'HOST': DB_HOST,
            'PORT': DB_PORT,
        }
    }

# Discovery seen-cache lives here; use a shared backend when running several workers
CACHES = {
    'default': {
        'BACKEND': os.environ.get('CACHE_BACKEND', 'django.core.cache.backends.locmem.LocMemCache'),
        'LOCATION': os.environ.get('CACHE_LOCATION', 'rinkside-venues'),
    }
}

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Django REST framework configuration
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.IsAuthenticated',
    ),
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=5),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=1),
}

CORS_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
]

# Add ALB host dynamically if provided
if alb_host := os.environ.get('ALB_HOST'):
    CORS_ALLOWED_ORIGINS.append(f"http://{alb_host}")
    CORS_ALLOWED_ORIGINS.append(f"https://{alb_host}")

CSRF_TRUSTED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
]

if alb_host := os.environ.get('ALB_HOST'):
    CSRF_TRUSTED_ORIGINS.append(f"http://{alb_host}")
    CSRF_TRUSTED_ORIGINS.append(f"https://{alb_host}")

# Venue resolution policy
VENUE_RESOLUTION = {
    'AUTO_RESOLVE_THRESHOLD': float(os.environ.get('VENUE_AUTO_RESOLVE_THRESHOLD', 0.7)),
    'REVIEW_THRESHOLD': float(os.environ.get('VENUE_REVIEW_THRESHOLD', 0.5)),
    'TIE_EPSILON': float(os.environ.get('VENUE_TIE_EPSILON', 0.05)),
    'AUTO_APPROVE_CEILING': float(os.environ.get('VENUE_AUTO_APPROVE_CEILING', 0.9)),
    'MAX_CANDIDATES': int(os.environ.get('VENUE_MAX_CANDIDATES', 3)),
    'GEOCODE_BATCH_SIZE': int(os.environ.get('VENUE_GEOCODE_BATCH_SIZE', 10)),
    'GEOCODE_BATCH_DELAY': float(os.environ.get('VENUE_GEOCODE_BATCH_DELAY', 2.0)),
    'DISCOVERY_CACHE_TTL': int(os.environ.get('VENUE_DISCOVERY_CACHE_TTL', 24 * 60 * 60)),
    'GEOCODE_AUTO_CREATE_CONFIDENCE': int(os.environ.get('VENUE_GEOCODE_AUTO_CREATE_CONFIDENCE', 90)),
}

# Google Places (venue discovery)
GOOGLE_MAPS_API_KEY = os.environ.get('GOOGLE_MAPS_API_KEY', '')
GOOGLE_PLACES_SEARCH_URL = os.environ.get(
    'GOOGLE_PLACES_SEARCH_URL', 'https://places.googleapis.com/v1/places:searchText'
)
GEOCODE_MAX_ATTEMPTS = int(os.environ.get('GEOCODE_MAX_ATTEMPTS', 4))
GEOCODE_BASE_DELAY = float(os.environ.get('GEOCODE_BASE_DELAY', 0.5))
GEOCODE_MAX_DELAY = float(os.environ.get('GEOCODE_MAX_DELAY', 8))
GEOCODE_TIMEOUT = float(os.environ.get('GEOCODE_TIMEOUT', 10))

# Default location bias: Southern California
GEOCODE_BIAS_LAT = float(os.environ.get('GEOCODE_BIAS_LAT', 33.8))
GEOCODE_BIAS_LNG = float(os.environ.get('GEOCODE_BIAS_LNG', -117.9))
GEOCODE_BIAS_RADIUS_METERS = float(os.environ.get('GEOCODE_BIAS_RADIUS_METERS', 50000))

# Nominatim coordinate backfill for newly created venues
GEOPY_USER_AGENT = os.environ.get('GEOPY_USER_AGENT', 'rinkside-venue-resolver')
GEOCODE_ON_CREATE = os.environ.get('GEOCODE_ON_CREATE', 'True') == 'True'

# Logging Configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
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
        'level': os.environ.get('LOG_LEVEL', 'INFO'),
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.environ.get('LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'django.request': {
            'handlers': ['console'],
            'level': 'ERROR',
            'propagate': False,
        },
        'api': {
            'handlers': ['console'],
            'level': os.environ.get('LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'venues': {
            'handlers': ['console'],
            'level': os.environ.get('LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

# Celery Configuration
AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

if os.environ.get('USE_SQS_BROKER', 'False') == 'True':
    # Production: SQS (install the "sqs" extra; credentials via IAM role)
    CELERY_BROKER_URL = 'sqs://'
    CELERY_BROKER_TRANSPORT_OPTIONS = {
        'region': AWS_REGION,
        'queue_name_prefix': 'rinkside-',
        'visibility_timeout': 3600,  # 1 hour
        'polling_interval': 1,  # Poll every second
        'wait_time_seconds': 20,  # Enable long polling for efficiency
    }
else:
    # Local development fallback: Use database broker
    from urllib.parse import quote_plus
    if DB_HOST:
        encoded_password = quote_plus(DB_PASSWORD)
        CELERY_BROKER_URL = f'sqla+postgresql://{DB_USER}:{encoded_password}@{DB_HOST}:{DB_PORT}/{DB_NAME}'
    else:
        CELERY_BROKER_URL = f'sqla+postgresql://{DB_USER}@/{DB_NAME}'

# Results stored via django-celery-results
CELERY_RESULT_BACKEND = 'django-db'

# Celery Beat scheduler uses database
CELERY_BEAT_SCHEDULER = 'django_celery_beat.schedulers:DatabaseScheduler'

# Task serialization
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'

# Task settings
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes max per task
CELERY_TASK_SOFT_TIME_LIMIT = 25 * 60  # Soft limit at 25 minutes

# Result expiration (7 days)
CELERY_RESULT_EXPIRES = 60 * 60 * 24 * 7

# Worker settings
CELERY_WORKER_PREFETCH_MULTIPLIER = 1  # One task at a time for rate-limited APIs
CELERY_WORKER_CONCURRENCY = 2  # Conservative for database-backed broker

# Set default queue to 'default' (not Celery's internal 'celery' queue)
CELERY_TASK_DEFAULT_QUEUE = 'default'

# Task routes for prioritization
CELERY_TASK_ROUTES = {
    'venues.tasks.geocode_venue_task': {'queue': 'geocoding'},
    'venues.tasks.run_discovery_task': {'queue': 'geocoding'},
    'venues.tasks.*': {'queue': 'default'},
}
