"""
Severity codes and their human-readable names.

The numeric values follow the classic PHP ``E_*`` bit layout so that a
reporting level can be expressed as a bitmask (``E_ALL & ~E_DEPRECATED``).
Python warning categories are mapped onto the same codes, which is what
lets the runtime-signal channel be filtered by mask.
"""

from typing import Type


E_ERROR = 1
E_WARNING = 2
E_PARSE = 4
E_NOTICE = 8
E_CORE_ERROR = 16
E_CORE_WARNING = 32
E_COMPILE_ERROR = 64
E_COMPILE_WARNING = 128
E_USER_ERROR = 256
E_USER_WARNING = 512
E_USER_NOTICE = 1024
E_STRICT = 2048
E_RECOVERABLE_ERROR = 4096
E_DEPRECATED = 8192
E_USER_DEPRECATED = 16384
E_ALL = 32767

UNKNOWN_ERROR = 'Unknown error'

SEVERITY_NAMES = {
    E_ERROR: 'Fatal Error',
    E_WARNING: 'Warning',
    E_PARSE: 'Parse error',
    E_NOTICE: 'Notice',
    E_CORE_ERROR: 'Core Error',
    E_CORE_WARNING: 'Core Warning',
    E_COMPILE_ERROR: 'Compile Error',
    E_COMPILE_WARNING: 'Compile Warning',
    E_USER_ERROR: 'User Error',
    E_USER_WARNING: 'User Warning',
    E_USER_NOTICE: 'User Notice',
    E_STRICT: 'Strict Notice',
    E_RECOVERABLE_ERROR: 'Recoverable Error',
    E_DEPRECATED: 'Deprecated Notice',
    E_USER_DEPRECATED: 'User Deprecated Notice',
    E_ALL: 'All Errors',
}

# Subclasses match too, e.g. Django's RemovedInDjangoXXWarning classes.
# Categories not listed here report as E_WARNING.
WARNING_SEVERITIES = (
    (DeprecationWarning, E_DEPRECATED),
    (PendingDeprecationWarning, E_DEPRECATED),
    (FutureWarning, E_USER_DEPRECATED),
    (SyntaxWarning, E_COMPILE_WARNING),
    (ImportWarning, E_CORE_WARNING),
    (ResourceWarning, E_NOTICE),
    (BytesWarning, E_STRICT),
    (UnicodeWarning, E_STRICT),
    (RuntimeWarning, E_WARNING),
    (UserWarning, E_USER_WARNING),
)


def classify(code: int) -> str:
    """
    Return the category name for a severity code.

    Only exact matches count: a combined mask such as
    ``E_WARNING | E_NOTICE`` is not decomposed and yields ``UNKNOWN_ERROR``.
    """
    if isinstance(code, bool) or not isinstance(code, int):
        return UNKNOWN_ERROR
    return SEVERITY_NAMES.get(code, UNKNOWN_ERROR)


def severity_for_warning(category: Type[Warning]) -> int:
    """Map a warning category to its severity code, E_WARNING when unlisted."""
    for warning_class, code in WARNING_SEVERITIES:
        if issubclass(category, warning_class):
            return code
    return E_WARNING


def categories_in_mask(mask: int):
    """Warning categories whose severity code intersects ``mask``."""
    return [warning_class for warning_class, code in WARNING_SEVERITIES if code & mask]


def exception_code(exc: BaseException) -> int:
    """
    Numeric code carried by an exception, 0 when it has none.

    Only integer ``code`` attributes count; Django's ``ValidationError``
    uses string codes, which are not severities.
    """
    code = getattr(exc, 'code', 0)
    if isinstance(code, bool) or not isinstance(code, int):
        return 0
    return code
