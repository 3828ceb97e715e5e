import hashlib
import platform
import sys
import time
import uuid
from typing import Callable, Iterable, NamedTuple, Tuple

from .tracing import FrameDescriptor


class ErrorRecord(NamedTuple):
    """One captured failure, normalized. Built once, never modified."""

    category: str
    code: int
    message: str
    source_file: str
    source_line: int
    stack_trace: Tuple[FrameDescriptor, ...]
    captured_at: float
    runtime_version: str
    os_name: str
    request_uri: str
    request_host: str
    script_path: str
    was_explicitly_handled: bool
    correlation_id: str
    referer: str = ''

    @property
    def location(self) -> str:
        return f"{self.source_file}:{self.source_line}"

    @property
    def full_uri(self) -> str:
        return f"{self.request_host}{self.request_uri}"

    def log_line(self) -> str:
        return (
            f"{self.category}: {self.message} in {self.location} "
            f"[{self.correlation_id}]"
        )


# ============================================================================
# ENVIRONMENT ACCESSORS
# ============================================================================

class ProcessEnvironment:
    """
    Ambient values for failures captured outside of a request.

    Also the base for the request-bound accessor; it supplies the runtime
    and platform strings both share.
    """

    def __init__(self, started_at: float = None):
        self.started_at = started_at

    def request_time(self) -> float:
        return self.started_at if self.started_at is not None else time.time()

    def request_host(self) -> str:
        return ''

    def request_uri(self) -> str:
        return ''

    def script_path(self) -> str:
        return sys.argv[0] if sys.argv else ''

    def referer_url(self) -> str:
        return ''

    def runtime_version(self) -> str:
        return f"{platform.python_implementation()} {platform.python_version()}"

    def os_name(self) -> str:
        return platform.system()


class RequestEnvironment(ProcessEnvironment):
    """Ambient values read from a Django ``HttpRequest``."""

    def __init__(self, request):
        super().__init__(getattr(request, 'errorguard_started_at', None))
        self.request = request

    def request_host(self) -> str:
        # get_host() raises DisallowedHost, which must not hide the real failure
        meta = self.request.META
        return meta.get('HTTP_HOST') or meta.get('SERVER_NAME', '')

    def request_uri(self) -> str:
        return self.request.get_full_path()

    def script_path(self) -> str:
        match = getattr(self.request, 'resolver_match', None)
        if match is None:
            return self.request.META.get('SCRIPT_NAME', '')
        func = match.func
        name = getattr(func, '__qualname__', type(func).__qualname__)
        return f"{func.__module__}.{name}"

    def referer_url(self) -> str:
        return self.request.META.get('HTTP_REFERER', '')


# ============================================================================
# RECORD BUILDER
# ============================================================================

def generate_correlation_id() -> str:
    """
    Short, quotable identifier linking a report page to its log line.

    Five hex characters of a hash over a random UUID: collisions are
    possible but rare enough for a human reading it over the phone.
    """
    return hashlib.md5(uuid.uuid4().bytes, usedforsecurity=False).hexdigest()[:5]


class ErrorRecordBuilder:
    """Assembles ``ErrorRecord`` objects from raw failure data."""

    def __init__(self, environment: Callable[[], ProcessEnvironment]):
        self.environment = environment

    def build(self, message: str, category: str, code: int, file: str, line: int,
              trace: Iterable[FrameDescriptor], was_handled: bool) -> ErrorRecord:
        """
        Build the record for one failure.

        Args:
            message: Failure message as shown to developers
            category: Result of classification, e.g. ``"Warning"``
            code: Raw numeric code from the failure channel
            file: Source file of the failure
            line: Source line of the failure
            trace: Frames, most recent first; consumed here
            was_handled: True only for the explicit ``handle()`` path

        Returns:
            The immutable record
        """
        env = self.environment()
        stack_trace = tuple(trace)
        return ErrorRecord(
            category=category,
            code=code,
            message=str(message),
            source_file=str(file),
            source_line=int(line or 0),
            stack_trace=stack_trace,
            captured_at=env.request_time(),
            runtime_version=env.runtime_version(),
            os_name=env.os_name(),
            request_uri=env.request_uri(),
            request_host=env.request_host(),
            script_path=env.script_path(),
            was_explicitly_handled=bool(was_handled),
            correlation_id=generate_correlation_id(),
            referer=env.referer_url(),
        )
