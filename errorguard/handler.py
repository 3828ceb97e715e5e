"""
The error handler: hook registration and the capture pipeline.

Every channel ends up in ``ErrorHandler.report()``, which builds exactly one
``ErrorRecord``, optionally logs it and returns the ``Terminate`` outcome
the dispatch boundary answers with.

Usage:
    from errorguard.handler import error_handler

    error_handler.initialize(logging_enabled=True)
    error_handler.set_developer_mode(request.user.is_staff)
"""

import logging
from contextvars import ContextVar
from typing import Callable, Iterable, Optional

from .hosts import DjangoHost, HostRuntime
from .records import ErrorRecordBuilder
from .reports import LoggingSink, ReportRenderer, Terminate
from .severity import classify, exception_code
from .tracing import (
    FrameDescriptor,
    StandardTraceSource,
    capture_trace,
    frames_from_traceback,
    innermost_location,
    select_trace_source,
)

logger = logging.getLogger(__name__)


class HandlerConfig:
    """
    Settings read by the capture hooks.

    ``verbose_reports`` lives in a context variable: it is decided per
    request (once the user is known) and must not leak into a concurrent
    request served by the same process.
    """

    def __init__(self, logging_enabled: bool = False, reporting_level: int = 0):
        self.logging_enabled = logging_enabled
        self.reporting_level = reporting_level
        self._verbose = ContextVar(f'errorguard_verbose_{id(self)}', default=False)

    @property
    def verbose_reports(self) -> bool:
        return self._verbose.get()

    @verbose_reports.setter
    def verbose_reports(self, value: bool) -> None:
        self._verbose.set(bool(value))


class HandlerRegistry:
    """Owns the hook registrations against one host."""

    def __init__(self, host: HostRuntime):
        self.host = host
        self.installed = False

    def install(self, uncaught_fault: Callable, runtime_signal: Callable,
                process_exit: Callable, severity_mask: int) -> None:
        # One hook per channel: a second install replaces the first
        if self.installed:
            self.uninstall()
        self.host.on_uncaught_fault(uncaught_fault)
        self.host.on_runtime_signal(runtime_signal, severity_mask)
        self.host.on_process_exit(process_exit)
        self.installed = True

    def uninstall(self) -> None:
        if not self.installed:
            return
        self.host.clear_hooks()
        self.installed = False


class ErrorHandler:
    """Captures failures from every channel and turns them into reports."""

    def __init__(self, host: HostRuntime, renderer: ReportRenderer = None,
                 sink: LoggingSink = None):
        self.host = host
        self.config = HandlerConfig()
        self.registry = HandlerRegistry(host)
        self.builder = ErrorRecordBuilder(host.environment)
        self.renderer = renderer or ReportRenderer()
        self.sink = sink or LoggingSink()
        self.trace_source = StandardTraceSource()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(self, logging_enabled: bool = True) -> None:
        """
        Take over error display and install the three capture hooks.

        Args:
            logging_enabled: Write one log line per captured failure
        """
        self.uninstall()
        self.host.disable_default_display()
        self.config.reporting_level = self.host.reporting_level()
        self.config.logging_enabled = bool(logging_enabled)
        self.trace_source = select_trace_source(self.host.has_enhanced_trace)

        self.registry.install(
            self.on_uncaught_fault,
            self.on_runtime_signal,
            self.on_process_exit,
            self.config.reporting_level,
        )
        logger.debug(
            "Error handler installed (level=%s, logging=%s, trace=%s)",
            self.config.reporting_level,
            self.config.logging_enabled,
            type(self.trace_source).__name__,
        )

    def uninstall(self) -> None:
        if not self.registry.installed:
            return
        self.registry.uninstall()
        self.host.restore_default_display()
        logger.debug("Error handler uninstalled")

    def set_developer_mode(self, is_developer: bool = False) -> None:
        self.config.verbose_reports = bool(is_developer)

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def handle(self, exc: BaseException) -> Terminate:
        """
        Report an exception the application caught itself.

        The exception's own traceback is used: the live stack at this point
        belongs to the recovery code, not to the fault.
        """
        code = exception_code(exc)
        file, line = innermost_location(exc.__traceback__)
        return self.report(
            str(exc),
            f"Caught {type(exc).__name__}",
            code,
            file,
            line,
            frames_from_traceback(exc.__traceback__, self.trace_source),
            True,
        )

    def on_uncaught_fault(self, exc: BaseException) -> Terminate:
        code = exception_code(exc)
        file, line = innermost_location(exc.__traceback__)
        return self.report(
            f"Uncaught {type(exc).__name__}: {exc}",
            classify(code),
            code,
            file,
            line,
            capture_trace(self.trace_source),
            False,
        )

    def on_runtime_signal(self, code: int, message: str, file: str, line: int) -> Terminate:
        return self.report(
            message, classify(code), code, file, line,
            capture_trace(self.trace_source), False,
        )

    def on_process_exit(self) -> Optional[Terminate]:
        last = self.host.last_error()
        if last is None:
            return None
        return self.report(
            last.message, classify(last.type), last.type, last.file, last.line,
            capture_trace(self.trace_source), False,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def report(self, message: str, category: str, code: int, file: str, line: int,
               trace: Iterable[FrameDescriptor], was_handled: bool) -> Terminate:
        # Warnings emitted while reporting do not start a second record
        with self.host.reporting():
            record = self.builder.build(message, category, code, file, line, trace, was_handled)

            if self.config.logging_enabled:
                self.sink.write(record.log_line(), record)

            outcome = self.renderer.render(record, self.config.verbose_reports)
        logger.debug("Reported %s as %r", record.category, outcome)
        return outcome


error_handler = ErrorHandler(DjangoHost())
