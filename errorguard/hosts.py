"""
Host runtime bindings.

``HostRuntime`` is the capability interface the handler needs from its
environment: a way to hook the three failure channels, to read the
"last error" slot and to obtain ambient request values. ``DjangoHost``
implements it on top of Django's request cycle and the ``warnings`` module.
"""

import logging
import sys
import warnings
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, NamedTuple, Optional

from django.core.signals import got_request_exception

from . import conf
from .errors import TerminateRequest
from .records import ProcessEnvironment, RequestEnvironment
from .severity import E_ERROR, E_WARNING, categories_in_mask, severity_for_warning
from .tracing import innermost_location

logger = logging.getLogger(__name__)


class LastError(NamedTuple):
    """Content of the host's "last error" slot."""

    message: str
    type: int
    file: str
    line: int


class HostRuntime:
    """Capability interface implemented by every host binding."""

    has_enhanced_trace = False

    def disable_default_display(self) -> None:
        raise NotImplementedError

    def restore_default_display(self) -> None:
        raise NotImplementedError

    def reporting_level(self) -> int:
        raise NotImplementedError

    def on_uncaught_fault(self, handler: Callable) -> None:
        raise NotImplementedError

    def on_runtime_signal(self, handler: Callable, severity_mask: int) -> None:
        raise NotImplementedError

    def on_process_exit(self, handler: Callable) -> None:
        raise NotImplementedError

    def clear_hooks(self) -> None:
        raise NotImplementedError

    def reporting(self):
        """Context manager held while a report is built."""
        raise NotImplementedError

    def last_error(self) -> Optional[LastError]:
        raise NotImplementedError

    def environment(self) -> ProcessEnvironment:
        raise NotImplementedError


_current_request = ContextVar('errorguard_request', default=None)
_last_error = ContextVar('errorguard_last_error', default=None)
_reporting = ContextVar('errorguard_reporting', default=False)


class DjangoHost(HostRuntime):
    """
    Binds the three channels to a Django site.

    - uncaught faults arrive through ``ErrorGuardMiddleware.process_exception``
    - runtime signals are Python warnings, seen through ``warnings.showwarning``
    - the end-of-request hook runs when the middleware gets its response back;
      the "last error" slot is filled by ``got_request_exception``, which only
      fires for exceptions Django turned into a 500 on its own
    """

    dispatch_uid = 'errorguard.last_error_slot'

    def __init__(self):
        self._uncaught = None
        self._exit = None
        self._previous_showwarning = None
        self._display_captured = False

    @property
    def has_enhanced_trace(self) -> bool:
        return conf.get_setting('ENHANCED_TRACE')

    # ------------------------------------------------------------------
    # Default display
    # ------------------------------------------------------------------

    def disable_default_display(self) -> None:
        # Warnings we do not report go to the py.warnings logger, not stderr
        if not self._display_captured:
            logging.captureWarnings(True)
            self._display_captured = True

    def restore_default_display(self) -> None:
        if self._display_captured:
            logging.captureWarnings(False)
            self._display_captured = False

    def reporting_level(self) -> int:
        return conf.get_setting('REPORTING_LEVEL')

    # ------------------------------------------------------------------
    # Hook registration
    # ------------------------------------------------------------------

    def on_uncaught_fault(self, handler: Callable) -> None:
        self._uncaught = handler

    def on_runtime_signal(self, handler: Callable, severity_mask: int) -> None:
        previous = warnings.showwarning

        def showwarning(message, category, filename, lineno, file=None, line=None):
            code = severity_for_warning(category)
            if (_current_request.get() is None or _reporting.get()
                    or not code & severity_mask):
                return previous(message, category, filename, lineno, file, line)
            raise TerminateRequest(handler(code, str(message), filename, lineno))

        self._previous_showwarning = previous
        warnings.showwarning = showwarning
        for category in categories_in_mask(severity_mask):
            warnings.filterwarnings('always', category=category)
        if E_WARNING & severity_mask:
            # Unlisted categories report as E_WARNING. Appended, so the
            # interpreter's default ignore filters still take precedence.
            warnings.filterwarnings('always', category=Warning, append=True)

    def on_process_exit(self, handler: Callable) -> None:
        self._exit = handler
        got_request_exception.connect(
            self._record_last_error, dispatch_uid=self.dispatch_uid
        )

    @contextmanager
    def reporting(self):
        """Warnings raised while a report is built go to the previous display."""
        token = _reporting.set(True)
        try:
            yield
        finally:
            _reporting.reset(token)

    def clear_hooks(self) -> None:
        if self._previous_showwarning is not None:
            warnings.showwarning = self._previous_showwarning
            self._previous_showwarning = None
        got_request_exception.disconnect(dispatch_uid=self.dispatch_uid)
        self._uncaught = None
        self._exit = None

    # ------------------------------------------------------------------
    # Request cycle, driven by the middleware
    # ------------------------------------------------------------------

    def begin_request(self, request):
        _last_error.set(None)
        return _current_request.set(request)

    def end_request(self, token) -> None:
        _current_request.reset(token)
        _last_error.set(None)

    def dispatch_uncaught(self, exc: BaseException):
        if self._uncaught is None:
            return None
        return self._uncaught(exc)

    def dispatch_exit(self):
        """Outcome to answer the request with, ``None`` on normal completion."""
        if self._exit is None:
            return None
        return self._exit()

    def last_error(self) -> Optional[LastError]:
        return _last_error.get()

    def environment(self) -> ProcessEnvironment:
        request = _current_request.get()
        if request is None:
            return ProcessEnvironment()
        return RequestEnvironment(request)

    def _record_last_error(self, sender, request=None, **kwargs):
        exc = sys.exc_info()[1]
        if exc is None:
            return
        file, line = innermost_location(exc.__traceback__)
        _last_error.set(LastError(
            message=f"{type(exc).__name__}: {exc}",
            type=E_ERROR,
            file=file,
            line=line,
        ))
        logger.debug("Recorded last error %s from %s:%s", type(exc).__name__, file, line)
