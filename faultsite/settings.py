from pathlib import Path
from decouple import config

from errorguard.severity import E_ALL, E_DEPRECATED, E_USER_DEPRECATED

# CORE DJANGO SETTINGS

# Build paths inside the project like this: BASE_DIR / 'subdir'
BASE_DIR = Path(__file__).resolve().parent.parent

DEBUG = config('DEBUG', default=False, cast=bool)

# Security settings
SECRET_KEY = config('SECRET_KEY', default='errorguard-insecure-development-key')
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='*').split(',') if config('ALLOWED_HOSTS', default='*') != '*' else ['*']


# APPLICATION DEFINITION

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'errorguard',
]


# MIDDLEWARE CONFIGURATION - errorguard first so it sees every failure

MIDDLEWARE = [
    'errorguard.middleware.ErrorGuardMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    # Needs request.user, so after authentication
    'errorguard.middleware.DeveloperModeMiddleware',
]


# URL AND ROUTING CONFIGURATION

ROOT_URLCONF = 'faultsite.urls'
WSGI_APPLICATION = 'faultsite.wsgi.application'


# TEMPLATE CONFIGURATION

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
            ],
        },
    },
]


# DATABASE CONFIGURATION

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': config('DB_NAME', default=str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# INTERNATIONALIZATION

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True


# ERROR REPORTING CONFIGURATION

ERRORGUARD = {
    # Write "<category>: <message> in <file>:<line> [<id>]" for every report
    'LOG_ERRORS': config('ERRORGUARD_LOG_ERRORS', default=True, cast=bool),
    # Deprecations are logged through py.warnings instead of ending the request
    'REPORTING_LEVEL': E_ALL & ~E_DEPRECATED & ~E_USER_DEPRECATED,
    'TIME_ZONE': config('ERRORGUARD_TIME_ZONE', default='Europe/Zurich'),
    'ENHANCED_TRACE': config('ERRORGUARD_ENHANCED_TRACE', default=DEBUG, cast=bool),
}


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

LOGS_DIR = Path(config('LOGS_DIR', default=str(BASE_DIR / 'logs')))
LOGS_DIR.mkdir(exist_ok=True, parents=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,

    'formatters': {
        'verbose': {
            # The message stays last so the correlation id ends the line
            'format': '[{levelname}] {asctime} | {name} | {module}.{funcName}:{lineno} | {process:d} {thread:d} | {message}',
            'style': '{',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
        'simple': {
            'format': '[{levelname}] {asctime} | {name} | {message}',
            'style': '{',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
    },

    'handlers': {
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },

        # One line per captured failure, searched by errorguard_lookup
        'errorguard_file': {
            'level': 'ERROR',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': str(LOGS_DIR / 'errorguard.log'),
            'maxBytes': 10485760,  # 10MB per file
            'backupCount': 20,
            'formatter': 'verbose',
            'encoding': 'utf-8',
        },

        # Warnings outside the reporting level end up here
        'warnings_file': {
            'level': 'WARNING',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': str(LOGS_DIR / 'warnings.log'),
            'maxBytes': 10485760,
            'backupCount': 5,
            'formatter': 'verbose',
            'encoding': 'utf-8',
        },
    },

    'loggers': {
        '': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },

        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },

        'errorguard.faults': {
            'handlers': ['console', 'errorguard_file'],
            'level': 'ERROR',
            'propagate': False,
        },

        'errorguard': {
            'handlers': ['console'],
            'level': 'DEBUG' if DEBUG else 'INFO',
            'propagate': False,
        },

        'py.warnings': {
            'handlers': ['console', 'warnings_file'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}
