"""
Settings for errorguard, read from ``settings.ERRORGUARD``.

Values are looked up on every access so ``override_settings`` in tests
takes effect without reloading anything.

Example:
    ERRORGUARD = {
        'LOG_ERRORS': True,
        'REPORTING_LEVEL': E_ALL & ~E_DEPRECATED,
        'TIME_ZONE': 'Europe/Zurich',
    }
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from .severity import E_ALL


DEFAULTS = {
    'LOG_ERRORS': True,
    'REPORTING_LEVEL': E_ALL,
    'TIME_ZONE': 'Europe/Zurich',
    # None means "follow settings.DEBUG"
    'ENHANCED_TRACE': None,
    'IGNORE_EXCEPTIONS': [
        'django.http.Http404',
        'django.core.exceptions.PermissionDenied',
    ],
    'DEVELOPER_ATTRIBUTE': 'is_staff',
    'LOGGER': 'errorguard.faults',
    'LOG_FILE': 'errorguard.log',
}


def _user_settings():
    user_settings = getattr(settings, 'ERRORGUARD', {}) or {}
    unknown = set(user_settings) - set(DEFAULTS)
    if unknown:
        raise ImproperlyConfigured(
            f"Unknown ERRORGUARD setting(s): {', '.join(sorted(unknown))}"
        )
    return user_settings


def get_setting(name):
    value = _user_settings().get(name, DEFAULTS[name])

    if name == 'ENHANCED_TRACE' and value is None:
        return bool(settings.DEBUG)

    if name == 'REPORTING_LEVEL' and (isinstance(value, bool) or not isinstance(value, int)):
        raise ImproperlyConfigured(
            f"ERRORGUARD['REPORTING_LEVEL'] must be an integer bitmask, got {value!r}"
        )

    return value


def ignored_exceptions():
    """Exception classes left to Django's own handling."""
    return tuple(import_string(path) for path in get_setting('IGNORE_EXCEPTIONS'))
