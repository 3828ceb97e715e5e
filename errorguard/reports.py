import logging
from datetime import datetime, timezone as dt_timezone
from typing import Dict, Any, List

from django.http import HttpResponse
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.cache import add_never_cache_headers
from django.utils.http import url_has_allowed_host_and_scheme

from .records import ErrorRecord


HISTORY_BACK = 'javascript:history.back()'


class Terminate:
    """
    Terminal outcome of a captured failure.

    The core never ends the request itself; it hands this object back to the
    dispatch boundary, which turns it into the final response.
    """

    status_code = 500

    def __init__(self, record: ErrorRecord, body: str, verbose: bool):
        self.record = record
        self.body = body
        self.verbose = verbose

    def as_response(self) -> HttpResponse:
        response = HttpResponse(
            self.body,
            status=self.status_code,
            content_type='text/html; charset=utf-8',
        )
        add_never_cache_headers(response)
        return response

    def __repr__(self):
        mode = 'verbose' if self.verbose else 'anonymous'
        return f"<Terminate {self.record.correlation_id} ({mode})>"


class LoggingSink:
    """Writes one line per captured failure to a ``logging`` logger."""

    def __init__(self, logger_name: str = 'errorguard.faults'):
        self.logger = logging.getLogger(logger_name)

    def write(self, line: str, record: ErrorRecord = None) -> None:
        extra = {}
        if record is not None:
            extra = {
                'correlation_id': record.correlation_id,
                'category': record.category,
                'error_code': record.code,
            }
        self.logger.error(line, extra=extra)


def back_url(record: ErrorRecord) -> str:
    """
    Target of the "back" link.

    The referer is only trusted when it points at the same host over
    http(s); anything else falls back to client-side history navigation.
    """
    referer = record.referer
    if referer and url_has_allowed_host_and_scheme(
        referer, allowed_hosts={record.request_host}
    ):
        return referer
    return HISTORY_BACK


def format_trace(record: ErrorRecord) -> List[str]:
    lines = []
    for index, frame in enumerate(record.stack_trace):
        lines.append(f"#{index} {frame}")
        lines.extend(f"    | {source}" for source in frame.context)
        lines.extend(f"    {name} = {value}" for name, value in frame.locals)
    return lines


class ReportRenderer:
    """Renders one of the two report pages for a record."""

    verbose_template = 'errorguard/report_verbose.html'
    anonymous_template = 'errorguard/report_anonymous.html'

    def __init__(self, time_zone: str = 'Europe/Zurich'):
        self.time_zone = time_zone

    def render(self, record: ErrorRecord, verbose: bool) -> Terminate:
        if verbose:
            template, context = self.verbose_template, self.verbose_context(record)
        else:
            template, context = self.anonymous_template, self.anonymous_context(record)

        with timezone.override(self.time_zone):
            body = render_to_string(template, context)
        return Terminate(record, body, verbose)

    def anonymous_context(self, record: ErrorRecord) -> Dict[str, Any]:
        # Nothing here may describe the failure itself
        return {
            'captured_at': datetime.fromtimestamp(record.captured_at, tz=dt_timezone.utc),
            'uri': record.full_uri,
            'correlation_id': record.correlation_id,
            'back_url': back_url(record),
        }

    def verbose_context(self, record: ErrorRecord) -> Dict[str, Any]:
        context = self.anonymous_context(record)
        context.update({
            'record': record,
            'script_path': record.script_path,
            'runtime': f"{record.runtime_version} ({record.os_name})",
            'trace_lines': format_trace(record),
        })
        return context
