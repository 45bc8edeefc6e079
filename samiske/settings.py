"""
Django settings for the samiske project.
Production-ready for Koyeb + Supabase + Cloudinary + Bunny Stream
"""

import os
import mimetypes
import dj_database_url
from pathlib import Path

# Build paths
BASE_DIR = Path(__file__).resolve().parent.parent

# ==================== SECURITY ====================
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-only-4f#q9w!samiske-k2@x7v$1z0p&l3m8n^b6c5d')
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

ALLOWED_HOSTS = ['localhost', '127.0.0.1']
if os.getenv('ALLOWED_HOSTS'):
    ALLOWED_HOSTS.extend(os.getenv('ALLOWED_HOSTS').split(','))
elif not DEBUG:
    ALLOWED_HOSTS = ['.koyeb.app', 'samiske.no', '.samiske.no']

CSRF_TRUSTED_ORIGINS = []
if os.getenv('CSRF_TRUSTED_ORIGINS'):
    CSRF_TRUSTED_ORIGINS.extend(os.getenv('CSRF_TRUSTED_ORIGINS').split(','))
elif not DEBUG:
    CSRF_TRUSTED_ORIGINS = ['https://*.koyeb.app', 'https://samiske.no']

# ==================== APPLICATIONS ====================
INSTALLED_APPS = [
    'community.apps.CommunityConfig',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

# Conditional: Cloudinary for media
USE_CLOUDINARY = bool(os.getenv('CLOUDINARY_CLOUD_NAME'))
if USE_CLOUDINARY:
    INSTALLED_APPS += ['cloudinary_storage', 'cloudinary']

# ==================== MIDDLEWARE ====================
MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'community.middleware.TimezoneMiddleware',
    'community.middleware.UpdateLastSeenMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

# ==================== TEMPLATES ====================
ROOT_URLCONF = 'samiske.urls'
WSGI_APPLICATION = 'samiske.wsgi.application'

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

# ==================== DATABASE (SUPABASE) ====================
DATABASE_URL = os.getenv('DATABASE_URL', '')

if DATABASE_URL and 'postgres' in DATABASE_URL:
    # Supabase PostgreSQL with SSL
    DATABASES = {
        'default': dj_database_url.config(
            default=DATABASE_URL,
            conn_max_age=600,
            conn_health_checks=True,
            ssl_require=True,
        )
    }
    if 'supabase' in DATABASE_URL:
        DATABASES['default']['OPTIONS'] = {
            'sslmode': 'require',
            'options': '-c search_path=public'
        }
else:
    # Fallback to SQLite for development
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

# ==================== CACHE ====================
if os.getenv('REDIS_URL'):
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.redis.RedisCache',
            'LOCATION': os.getenv('REDIS_URL'),
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'samiske',
        }
    }

# ==================== AUTHENTICATION ====================
AUTH_USER_MODEL = "community.User"

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LOGIN_URL = '/admin/login/'
LOGIN_REDIRECT_URL = '/'
LOGOUT_REDIRECT_URL = '/'

# ==================== INTERNATIONALIZATION ====================
LANGUAGE_CODE = 'nb'
TIME_ZONE = 'Europe/Oslo'
USE_I18N = True
USE_TZ = True

# ==================== STATIC & MEDIA FILES ====================
STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
MEDIA_URL = '/media/'
MEDIA_ROOT = BASE_DIR / 'media'

if USE_CLOUDINARY:
    # Cloudinary for production
    CLOUDINARY_STORAGE = {
        'CLOUD_NAME': os.getenv('CLOUDINARY_CLOUD_NAME'),
        'API_KEY': os.getenv('CLOUDINARY_API_KEY'),
        'API_SECRET': os.getenv('CLOUDINARY_API_SECRET'),
    }
    _media_backend = 'cloudinary_storage.storage.MediaCloudinaryStorage'
else:
    # Local media for development
    _media_backend = 'django.core.files.storage.FileSystemStorage'

STORAGES = {
    'default': {'BACKEND': _media_backend},
    'staticfiles': {'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage'},
}

# ==================== FILE UPLOAD ====================
FILE_UPLOAD_HANDLERS = [
    'django.core.files.uploadhandler.MemoryFileUploadHandler',
    'django.core.files.uploadhandler.TemporaryFileUploadHandler',
]
# Video bytes are proxied to Bunny Stream through PUT /api/video/upload
DATA_UPLOAD_MAX_MEMORY_SIZE = 500 * 1024 * 1024
FILE_UPLOAD_MAX_MEMORY_SIZE = 5 * 1024 * 1024

# ==================== EXTERNAL SERVICES ====================
BUNNY_STREAM_API_KEY = os.getenv('BUNNY_STREAM_API_KEY', '')
BUNNY_STREAM_LIBRARY_ID = os.getenv('BUNNY_STREAM_LIBRARY_ID', '')
BUNNY_STREAM_CDN_HOSTNAME = os.getenv('BUNNY_STREAM_CDN_HOSTNAME', 'vz-xxxxxxxx-xxx.b-cdn.net')
BUNNY_STREAM_TIMEOUT = int(os.getenv('BUNNY_STREAM_TIMEOUT', 30))

TENOR_API_KEY = os.getenv('TENOR_API_KEY', '')
TENOR_API_URL = 'https://tenor.googleapis.com/v2'
TENOR_CLIENT_KEY = 'samiske'

LINK_PREVIEW_USER_AGENT = 'Mozilla/5.0 (compatible; Samiske/1.0; +https://samiske.no)'
LINK_PREVIEW_TIMEOUT = 5
LINK_PREVIEW_MAX_BYTES = 100 * 1024

# ==================== COMPOSER ====================
COMPOSER = {
    'MAX_IMAGES_PER_POST': int(os.getenv('COMPOSER_MAX_IMAGES_PER_POST', 50)),
    'MAX_VIDEO_LENGTH': 600,            # seconds
    'MAX_VIDEO_SIZE_MB': 500,
    'MAX_HASHTAGS_PER_POST': 30,
    'MAX_POLL_OPTIONS': 10,
    'MAX_SCHEDULE_DAYS': 60,
    'AUTOSAVE_INTERVAL': 30,            # seconds
    'VIDEO_POLL_INTERVAL': 5,           # seconds
    'VIDEO_POLL_TIMEOUT': 300,          # seconds
    'MAX_DRAFTS': 10,
}

# Defaults for the app_settings driven media limits
MEDIA_DEFAULTS = {
    'max_file_size_mb': 20,
    'max_images_per_post': 50,
    'max_image_dimension': 4096,
    'allowed_types': [
        'image/jpeg', 'image/jpg', 'image/png', 'image/gif', 'image/webp',
        'image/heic', 'image/heif',
    ],
}
MEDIA_SETTINGS_CACHE_TTL = 300

COMMENT_MAX_DEPTH = 3

# ==================== SECURITY HEADERS ====================
if not DEBUG:
    SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

    SECURE_SSL_REDIRECT = os.getenv('SECURE_SSL_REDIRECT', 'True') == 'True'
    SECURE_HSTS_SECONDS = 31536000
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True

    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    CSRF_COOKIE_HTTPONLY = True

    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = 'DENY'
    SECURE_REFERRER_POLICY = 'same-origin'

# ==================== LOGGING ====================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
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
            'formatter': 'verbose' if DEBUG else 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO' if DEBUG else 'WARNING',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': True,
        },
        'django.db.backends': {
            'level': 'ERROR',
            'handlers': ['console'],
            'propagate': False,
        },
        'community': {
            'handlers': ['console'],
            'level': os.getenv('COMMUNITY_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

# ==================== MISC ====================
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

SESSION_ENGINE = 'django.contrib.sessions.backends.db'
SESSION_COOKIE_AGE = 1209600  # 2 weeks in seconds

# File type fixes
mimetypes.add_type('video/mp4', '.mp4')
mimetypes.add_type('image/webp', '.webp')
mimetypes.add_type('image/heic', '.heic')
