"""
Stack trace collection.

Two sources share one interface: the standard one records file, line and
function for every frame, the enhanced one also keeps surrounding source
lines and the frame's local variables. The source is picked once, when the
handler is initialized, never per capture.
"""

import linecache
import reprlib
import sys
import traceback
from types import FrameType, TracebackType
from typing import Iterator, NamedTuple, Optional, Tuple


class FrameDescriptor(NamedTuple):
    filename: str
    lineno: int
    function: str
    context: Tuple[str, ...] = ()
    locals: Tuple[Tuple[str, str], ...] = ()

    def __str__(self):
        return f"{self.function} at {self.filename}:{self.lineno}"


class StandardTraceSource:
    """Frames as file, line and function only."""

    enhanced = False

    def describe(self, frame: FrameType, lineno: int) -> FrameDescriptor:
        return FrameDescriptor(
            filename=frame.f_code.co_filename,
            lineno=lineno,
            function=frame.f_code.co_name,
        )

    def walk(self, frame: FrameType) -> Iterator[FrameDescriptor]:
        # Frames are collected now, described lazily
        entries = list(traceback.walk_stack(frame))
        return (self.describe(current, lineno) for current, lineno in entries)

    def walk_traceback(self, tb: Optional[TracebackType]) -> Iterator[FrameDescriptor]:
        # walk_tb goes from the outermost call to the raise site
        entries = list(traceback.walk_tb(tb))
        return (self.describe(current, lineno) for current, lineno in reversed(entries))


class EnhancedTraceSource(StandardTraceSource):
    """Frames with source context and local variable reprs."""

    enhanced = True
    context_lines = 2

    def __init__(self):
        self._repr = reprlib.Repr()
        self._repr.maxstring = 120
        self._repr.maxother = 120

    def describe(self, frame: FrameType, lineno: int) -> FrameDescriptor:
        filename = frame.f_code.co_filename
        first = max(lineno - self.context_lines, 1)
        context = tuple(
            linecache.getline(filename, number, frame.f_globals).rstrip('\n')
            for number in range(first, lineno + self.context_lines + 1)
        )
        return FrameDescriptor(
            filename=filename,
            lineno=lineno,
            function=frame.f_code.co_name,
            context=context,
            locals=tuple(
                (name, self._safe_repr(value))
                for name, value in frame.f_locals.items()
            ),
        )

    def _safe_repr(self, value) -> str:
        try:
            return self._repr.repr(value)
        except Exception as e:
            return f"<unrepresentable {type(value).__name__}: {type(e).__name__}>"


def select_trace_source(enhanced: bool) -> StandardTraceSource:
    return EnhancedTraceSource() if enhanced else StandardTraceSource()


def capture_trace(source: Optional[StandardTraceSource] = None) -> Iterator[FrameDescriptor]:
    """
    Collect the current call stack, most recent call first.

    The frame of this function is dropped, so the first descriptor is the
    caller. The result is a one-shot iterator over the live stack and must
    be consumed before the caller returns.
    """
    frames = (source or StandardTraceSource()).walk(sys._getframe())
    next(frames, None)
    return frames


def frames_from_traceback(tb: Optional[TracebackType],
                          source: Optional[StandardTraceSource] = None) -> Iterator[FrameDescriptor]:
    """Descriptors for a traceback object, most recent call first."""
    return (source or StandardTraceSource()).walk_traceback(tb)


def innermost_location(tb: Optional[TracebackType]) -> Tuple[str, int]:
    """File and line where an exception was raised, ``("", 0)`` without a traceback."""
    if tb is None:
        return '', 0
    last = None
    for last in traceback.walk_tb(tb):
        pass
    frame, lineno = last
    return frame.f_code.co_filename, lineno
