import contextvars
import hashlib
import random
import re
import tempfile
import warnings
from contextlib import contextmanager
from io import StringIO
from pathlib import Path
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.core.management.base import CommandError
from django.http import Http404, HttpResponse
from django.test import Client, SimpleTestCase, TestCase, override_settings
from django.urls import path

from .conf import get_setting
from .errors import TerminateRequest
from .handler import ErrorHandler, HandlerConfig, error_handler
from .hosts import HostRuntime, LastError
from .records import ErrorRecordBuilder, ProcessEnvironment, generate_correlation_id
from .reports import HISTORY_BACK, ReportRenderer, Terminate, back_url
from .severity import (
    E_ALL, E_DEPRECATED, E_ERROR, E_NOTICE, E_USER_WARNING, E_WARNING,
    SEVERITY_NAMES, UNKNOWN_ERROR, classify, severity_for_warning,
)
from .shortcuts import handle
from .tracing import (
    EnhancedTraceSource, StandardTraceSource, capture_trace, frames_from_traceback,
)

REQUEST_TIME = 1700000000.0  # Tue Nov 2023, 23:13:20 in Zurich
LOG_LINE = re.compile(r'^Warning: division by zero in calc\.x:42 \[[0-9a-f]{5}\]$')


class RangeFault(Exception):
    pass


class CodedFault(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


# ============================================================================
# TEST DOUBLES
# ============================================================================

class StubEnvironment(ProcessEnvironment):
    def __init__(self, referer=''):
        super().__init__(started_at=REQUEST_TIME)
        self.referer = referer

    def request_host(self):
        return 'intranet.example'

    def request_uri(self):
        return '/orders/'

    def script_path(self):
        return 'shop.views.order_list'

    def referer_url(self):
        return self.referer


class RecordingHost(HostRuntime):
    """Host that only remembers what was registered against it."""

    def __init__(self, level=E_ALL, enhanced=False):
        self.level = level
        self.has_enhanced_trace = enhanced
        self.hooks = {}
        self.mask = None
        self.display_disabled = False
        self.slot = None
        self.env = StubEnvironment()
        self.guard_depth = 0

    def disable_default_display(self):
        self.display_disabled = True

    def restore_default_display(self):
        self.display_disabled = False

    def reporting_level(self):
        return self.level

    def on_uncaught_fault(self, handler):
        self.hooks['uncaught'] = handler

    def on_runtime_signal(self, handler, severity_mask):
        self.hooks['signal'] = handler
        self.mask = severity_mask

    def on_process_exit(self, handler):
        self.hooks['exit'] = handler

    def clear_hooks(self):
        self.hooks = {}
        self.mask = None

    @contextmanager
    def reporting(self):
        self.guard_depth += 1
        try:
            yield
        finally:
            self.guard_depth -= 1

    def last_error(self):
        return self.slot

    def environment(self):
        return self.env


def make_handler(logging_enabled=True, level=E_ALL, enhanced=False):
    host = RecordingHost(level=level, enhanced=enhanced)
    handler = ErrorHandler(host)
    handler.initialize(logging_enabled=logging_enabled)
    return handler, host


def raise_range_fault():
    raise RangeFault('index out of range')


# ============================================================================
# VIEWS AND MIDDLEWARE USED BY THE REQUEST TESTS
# ============================================================================

def ok_view(request):
    return HttpResponse('all good')


def raising_view(request):
    raise RangeFault('index out of range')


def warning_view(request):
    warnings.warn_explicit('division by zero', RuntimeWarning, 'calc.x', 42)
    return HttpResponse('kept running')


def user_warning_view(request):
    warnings.warn('check your input', UserWarning)
    return HttpResponse('kept running')


def deprecation_view(request):
    warnings.warn('old api', DeprecationWarning)
    return HttpResponse('kept running')


def caught_view(request):
    try:
        raise_range_fault()
    except RangeFault as e:
        handle(e)
    return HttpResponse('kept running')


def swallowed_warning_view(request):
    try:
        warnings.warn_explicit('division by zero', RuntimeWarning, 'calc.x', 42)
    except Exception:
        pass
    return HttpResponse('kept running')


def swallowed_handle_view(request):
    try:
        raise_range_fault()
    except RangeFault as e:
        try:
            handle(e)
        except Exception:
            pass
    return HttpResponse('kept running')


class StaleQuoteWarning(Warning):
    pass


def custom_warning_view(request):
    warnings.warn('carrier quote is stale', StaleQuoteWarning)
    return HttpResponse('kept running')


def not_found_view(request):
    raise Http404('no such order')


class ExplodingMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.path == '/middleware-fault/':
            raise MemoryError('out of memory in middleware')
        if request.path == '/middleware-warning/':
            warnings.warn('session cache is stale', RuntimeWarning)
        return self.get_response(request)


urlpatterns = [
    path('ok/', ok_view),
    path('raise/', raising_view),
    path('warning/', warning_view),
    path('user-warning/', user_warning_view),
    path('deprecation/', deprecation_view),
    path('caught/', caught_view),
    path('missing/', not_found_view),
    path('middleware-fault/', ok_view),
    path('middleware-warning/', ok_view),
    path('swallowed-warning/', swallowed_warning_view),
    path('swallowed-handle/', swallowed_handle_view),
    path('custom-warning/', custom_warning_view),
]


# ============================================================================
# CLASSIFICATION
# ============================================================================

class ClassifyTestCase(SimpleTestCase):
    def test_every_table_entry_maps_to_its_name(self):
        for code, name in SEVERITY_NAMES.items():
            self.assertEqual(classify(code), name)

    def test_named_examples(self):
        self.assertEqual(classify(E_ERROR), 'Fatal Error')
        self.assertEqual(classify(E_WARNING), 'Warning')
        self.assertEqual(classify(E_USER_WARNING), 'User Warning')
        self.assertEqual(classify(E_ALL), 'All Errors')

    def test_unmapped_codes_are_unknown(self):
        for code in (0, 3, 6, -1, 65536, 32766, E_WARNING | E_NOTICE):
            self.assertEqual(classify(code), UNKNOWN_ERROR)

    def test_non_integer_codes_are_unknown(self):
        self.assertEqual(classify(True), UNKNOWN_ERROR)
        self.assertEqual(classify('2'), UNKNOWN_ERROR)
        self.assertEqual(classify(None), UNKNOWN_ERROR)

    def test_warning_categories(self):
        class RemovedInNextRelease(DeprecationWarning):
            pass

        self.assertEqual(severity_for_warning(RuntimeWarning), E_WARNING)
        self.assertEqual(severity_for_warning(UserWarning), E_USER_WARNING)
        self.assertEqual(severity_for_warning(RemovedInNextRelease), E_DEPRECATED)
        self.assertEqual(severity_for_warning(ResourceWarning), E_NOTICE)
        self.assertEqual(severity_for_warning(Warning), E_WARNING)


# ============================================================================
# TRACE COLLECTION
# ============================================================================

class TraceTestCase(SimpleTestCase):
    def test_capture_trace_drops_its_own_frame(self):
        def probe():
            return capture_trace()

        frames = list(probe())
        self.assertEqual(frames[0].function, 'probe')
        self.assertEqual(frames[1].function, 'test_capture_trace_drops_its_own_frame')
        self.assertNotIn('capture_trace', [frame.function for frame in frames])

    def test_capture_trace_is_single_use(self):
        frames = capture_trace()
        self.assertTrue(list(frames))
        self.assertEqual(list(frames), [])

    def test_traceback_frames_are_most_recent_first(self):
        try:
            raise_range_fault()
        except RangeFault as e:
            frames = list(frames_from_traceback(e.__traceback__))

        self.assertEqual(frames[0].function, 'raise_range_fault')
        self.assertEqual(frames[1].function, 'test_traceback_frames_are_most_recent_first')

    def test_missing_traceback_gives_no_frames(self):
        self.assertEqual(list(frames_from_traceback(None)), [])

    def test_enhanced_source_keeps_context_and_locals(self):
        def probe():
            marker = 'visible local'
            return list(capture_trace(EnhancedTraceSource()))

        first = probe()[0]
        self.assertEqual(first.function, 'probe')
        self.assertIn(('marker', "'visible local'"), first.locals)
        self.assertTrue(any('capture_trace' in line for line in first.context))

    def test_standard_source_has_no_locals(self):
        first = next(capture_trace(StandardTraceSource()))
        self.assertEqual(first.locals, ())
        self.assertEqual(first.context, ())


# ============================================================================
# RECORD BUILDING
# ============================================================================

class RecordBuilderTestCase(SimpleTestCase):
    def setUp(self):
        self.builder = ErrorRecordBuilder(StubEnvironment)

    def build(self, **overrides):
        values = dict(
            message='division by zero', category='Warning', code=E_WARNING,
            file='calc.x', line=42, trace=iter(()), was_handled=False,
        )
        values.update(overrides)
        return self.builder.build(**values)

    def test_ambient_values_come_from_the_environment(self):
        record = self.build()
        self.assertEqual(record.captured_at, REQUEST_TIME)
        self.assertEqual(record.request_host, 'intranet.example')
        self.assertEqual(record.request_uri, '/orders/')
        self.assertEqual(record.script_path, 'shop.views.order_list')
        self.assertTrue(record.runtime_version)
        self.assertFalse(record.was_explicitly_handled)

    def test_correlation_id_is_five_hex_characters(self):
        record = self.build()
        self.assertRegex(record.correlation_id, r'^[0-9a-f]{5}$')

    def test_correlation_id_hash_is_not_a_security_use(self):
        with mock.patch('errorguard.records.hashlib.md5', wraps=hashlib.md5) as md5:
            generate_correlation_id()
        self.assertIs(md5.call_args.kwargs['usedforsecurity'], False)

    def test_each_record_gets_a_fresh_correlation_id(self):
        ids = {self.build().correlation_id for _ in range(20)}
        self.assertGreater(len(ids), 1)

    def test_trace_is_consumed_into_a_tuple(self):
        trace = capture_trace()
        record = self.build(trace=trace)
        self.assertIsInstance(record.stack_trace, tuple)
        self.assertTrue(record.stack_trace)
        self.assertEqual(list(trace), [])

    def test_record_is_immutable(self):
        record = self.build()
        with self.assertRaises(AttributeError):
            record.message = 'changed'

    def test_log_line_format(self):
        with mock.patch('errorguard.records.generate_correlation_id', return_value='abcde'):
            record = self.build()
        self.assertEqual(record.log_line(), 'Warning: division by zero in calc.x:42 [abcde]')


# ============================================================================
# HANDLER AND REGISTRY
# ============================================================================

class HandlerRegistryTestCase(SimpleTestCase):
    def test_initialize_installs_one_hook_per_channel(self):
        handler, host = make_handler(level=E_WARNING | E_NOTICE)
        self.assertEqual(set(host.hooks), {'uncaught', 'signal', 'exit'})
        self.assertEqual(host.mask, E_WARNING | E_NOTICE)
        self.assertTrue(host.display_disabled)
        self.assertEqual(handler.config.reporting_level, E_WARNING | E_NOTICE)
        self.assertTrue(handler.registry.installed)

    def test_initialize_twice_replaces_hooks(self):
        handler, host = make_handler()
        handler.initialize(logging_enabled=False)
        self.assertEqual(len(host.hooks), 3)
        self.assertFalse(handler.config.logging_enabled)

    def test_uninstall_removes_hooks_and_restores_display(self):
        handler, host = make_handler()
        handler.uninstall()
        self.assertEqual(host.hooks, {})
        self.assertFalse(host.display_disabled)
        self.assertFalse(handler.registry.installed)

    def test_trace_source_selected_at_initialize(self):
        handler, _ = make_handler(enhanced=True)
        self.assertIsInstance(handler.trace_source, EnhancedTraceSource)
        handler, _ = make_handler(enhanced=False)
        self.assertNotIsInstance(handler.trace_source, EnhancedTraceSource)

    def test_logging_flag_is_coerced(self):
        handler, _ = make_handler(logging_enabled='yes')
        self.assertIs(handler.config.logging_enabled, True)


class DeveloperModeTestCase(SimpleTestCase):
    def test_defaults_to_anonymous(self):
        self.assertFalse(HandlerConfig().verbose_reports)
        handler, _ = make_handler()
        self.assertFalse(handler.config.verbose_reports)

    def test_value_is_coerced(self):
        handler, _ = make_handler()
        handler.set_developer_mode('yes')
        self.assertIs(handler.config.verbose_reports, True)
        handler.set_developer_mode(0)
        self.assertIs(handler.config.verbose_reports, False)

    def test_does_not_leak_into_another_context(self):
        handler, _ = make_handler()
        contextvars.copy_context().run(handler.set_developer_mode, True)
        self.assertFalse(handler.config.verbose_reports)


class CaptureChannelsTestCase(SimpleTestCase):
    def setUp(self):
        self.handler, self.host = make_handler()
        patcher = mock.patch('errorguard.records.generate_correlation_id', return_value='abcde')
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_runtime_signal_scenario(self):
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            outcome = self.host.hooks['signal'](E_WARNING, 'division by zero', 'calc.x', 42)

        self.assertEqual(len(cm.records), 1)
        self.assertRegex(cm.records[0].getMessage(), LOG_LINE)
        self.assertIsInstance(outcome, Terminate)
        self.assertFalse(outcome.verbose)
        self.assertNotIn('calc.x', outcome.body)
        self.assertNotIn('42', outcome.body)
        self.assertNotIn('division by zero', outcome.body)
        self.assertIn('abcde', outcome.body)

    def test_runtime_signal_trace_starts_at_the_hook(self):
        outcome = self.host.hooks['signal'](E_WARNING, 'division by zero', 'calc.x', 42)
        self.assertEqual(outcome.record.stack_trace[0].function, 'on_runtime_signal')

    def test_uncaught_fault(self):
        try:
            raise_range_fault()
        except RangeFault as e:
            with self.assertLogs('errorguard.faults', level='ERROR') as cm:
                outcome = self.host.hooks['uncaught'](e)

        record = outcome.record
        self.assertEqual(record.message, 'Uncaught RangeFault: index out of range')
        self.assertEqual(record.category, UNKNOWN_ERROR)
        self.assertEqual(record.code, 0)
        self.assertEqual(record.source_line, raise_range_fault.__code__.co_firstlineno + 1)
        self.assertTrue(record.source_file.endswith('tests.py'))
        self.assertFalse(record.was_explicitly_handled)
        self.assertEqual(len(cm.records), 1)

    def test_uncaught_fault_with_a_severity_code(self):
        outcome = self.host.hooks['uncaught'](CodedFault('disk full', E_ERROR))
        self.assertEqual(outcome.record.category, 'Fatal Error')
        self.assertEqual(outcome.record.code, E_ERROR)
        self.assertEqual(outcome.record.source_file, '')

    def test_explicit_handle(self):
        try:
            raise_range_fault()
        except RangeFault as e:
            outcome = self.handler.handle(e)

        record = outcome.record
        self.assertEqual(record.category, 'Caught RangeFault')
        self.assertEqual(record.message, 'index out of range')
        self.assertTrue(record.was_explicitly_handled)
        # The exception's own trace, not the handler's stack
        self.assertEqual(record.stack_trace[0].function, 'raise_range_fault')

    def test_process_exit_with_empty_slot(self):
        with self.assertNoLogs('errorguard.faults', level='ERROR'):
            outcome = self.host.hooks['exit']()
        self.assertIsNone(outcome)

    def test_process_exit_with_populated_slot(self):
        self.host.slot = LastError('Allowed memory exhausted', E_ERROR, 'big.py', 7)
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            outcome = self.host.hooks['exit']()

        self.assertEqual(len(cm.records), 1)
        self.assertEqual(
            cm.records[0].getMessage(),
            'Fatal Error: Allowed memory exhausted in big.py:7 [abcde]',
        )
        self.assertEqual(outcome.record.category, 'Fatal Error')

    def test_exactly_one_record_and_one_report_per_failure(self):
        with mock.patch.object(self.handler.builder, 'build', wraps=self.handler.builder.build) as build, \
                mock.patch.object(self.handler.renderer, 'render', wraps=self.handler.renderer.render) as render:
            self.host.hooks['signal'](E_WARNING, 'division by zero', 'calc.x', 42)
        build.assert_called_once()
        render.assert_called_once()

    def test_every_channel_renders_inside_the_host_guard(self):
        depths = []
        original = self.handler.renderer.render

        def render(record, verbose):
            depths.append(self.host.guard_depth)
            return original(record, verbose)

        self.host.slot = LastError('fatal', E_ERROR, 'big.py', 7)
        with mock.patch.object(self.handler.renderer, 'render', side_effect=render), \
                self.assertLogs('errorguard.faults', level='ERROR'):
            self.host.hooks['signal'](E_WARNING, 'division by zero', 'calc.x', 42)
            self.host.hooks['uncaught'](RangeFault('index out of range'))
            self.host.hooks['exit']()
            self.handler.handle(RangeFault('index out of range'))

        self.assertEqual(depths, [1, 1, 1, 1])
        self.assertEqual(self.host.guard_depth, 0)

    def test_logging_disabled_writes_nothing(self):
        handler, host = make_handler(logging_enabled=False)
        host.slot = LastError('fatal', E_ERROR, 'big.py', 7)
        with self.assertNoLogs('errorguard.faults', level='DEBUG'):
            host.hooks['signal'](E_WARNING, 'division by zero', 'calc.x', 42)
            host.hooks['uncaught'](RangeFault('index out of range'))
            host.hooks['exit']()
            handler.handle(RangeFault('index out of range'))

    def test_log_line_carries_correlation_extra(self):
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            self.host.hooks['signal'](E_WARNING, 'division by zero', 'calc.x', 42)
        self.assertEqual(cm.records[0].correlation_id, 'abcde')
        self.assertEqual(cm.records[0].error_code, E_WARNING)


# ============================================================================
# RENDERING
# ============================================================================

class ReportRenderingTestCase(SimpleTestCase):
    def setUp(self):
        self.handler, self.host = make_handler(logging_enabled=False)

    def random_failure(self, rng):
        token = ''.join(rng.choice('abcdefghijklmnopqrstuvwxyz') for _ in range(16))
        message = f"<script>alert('{token}')</script>\"><img src=x onerror=1>"
        file = f"/srv/<b>{token}</b>/app.py"
        line = rng.randint(10 ** 8, 10 ** 9)
        code = rng.randint(10 ** 8, 10 ** 9)
        return token, message, file, line, code

    def test_anonymous_report_never_leaks_details(self):
        rng = random.Random(20261019)
        for _ in range(25):
            token, message, file, line, code = self.random_failure(rng)
            outcome = self.host.hooks['signal'](code, message, file, line)
            body = outcome.body

            self.assertFalse(outcome.verbose)
            self.assertNotIn(token, body)
            self.assertNotIn(str(line), body)
            self.assertNotIn(str(code), body)
            self.assertNotIn('<script', body)
            self.assertNotIn('onerror', body)
            self.assertNotIn('Trace', body)
            self.assertNotIn('on_runtime_signal', body)
            self.assertIn(outcome.record.correlation_id, body)

    def test_verbose_report_shows_everything_escaped(self):
        rng = random.Random(7)
        token, message, file, line, code = self.random_failure(rng)
        self.handler.set_developer_mode(True)
        outcome = self.host.hooks['signal'](code, message, file, line)
        body = outcome.body

        self.assertTrue(outcome.verbose)
        self.assertIn(token, body)
        self.assertIn(str(line), body)
        self.assertIn(str(code), body)
        self.assertIn(UNKNOWN_ERROR, body)
        self.assertIn('&lt;script&gt;', body)
        self.assertNotIn('<script', body)
        self.assertIn('#0 on_runtime_signal', body)
        self.assertIn('shop.views.order_list', body)
        self.assertIn(outcome.record.runtime_version, body)

    def test_timestamp_uses_request_time_in_report_time_zone(self):
        outcome = self.host.hooks['signal'](E_WARNING, 'x', 'y', 1)
        self.assertIn('Tue Nov 2023', outcome.body)
        self.assertIn('23:13:20', outcome.body)

    def test_outcome_response(self):
        outcome = self.host.hooks['signal'](E_WARNING, 'x', 'y', 1)
        response = outcome.as_response()
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response['Content-Type'], 'text/html; charset=utf-8')
        self.assertIn('no-cache', response['Cache-Control'])

    def test_back_link(self):
        renderer = ReportRenderer()
        builder = ErrorRecordBuilder(lambda: StubEnvironment(referer=self.referer))

        cases = {
            'http://intranet.example/orders/?page=2': 'http://intranet.example/orders/?page=2',
            'https://evil.example/': HISTORY_BACK,
            'javascript:alert(1)': HISTORY_BACK,
            '': HISTORY_BACK,
        }
        for referer, expected in cases.items():
            self.referer = referer
            record = builder.build('m', 'Warning', E_WARNING, 'f', 1, (), False)
            self.assertEqual(back_url(record), expected)
            body = renderer.render(record, verbose=False).body
            self.assertIn('href="%s"' % expected.replace('&', '&amp;'), body)


# ============================================================================
# CONFIGURATION
# ============================================================================

class ConfTestCase(SimpleTestCase):
    @override_settings(ERRORGUARD={'NOT_A_SETTING': 1})
    def test_unknown_key_is_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            get_setting('LOG_ERRORS')

    @override_settings(ERRORGUARD={'REPORTING_LEVEL': 'E_ALL'})
    def test_reporting_level_must_be_an_integer(self):
        with self.assertRaises(ImproperlyConfigured):
            get_setting('REPORTING_LEVEL')

    @override_settings(ERRORGUARD={}, DEBUG=True)
    def test_enhanced_trace_follows_debug(self):
        self.assertTrue(get_setting('ENHANCED_TRACE'))

    @override_settings(ERRORGUARD={})
    def test_defaults(self):
        self.assertEqual(get_setting('REPORTING_LEVEL'), E_ALL)
        self.assertEqual(get_setting('TIME_ZONE'), 'Europe/Zurich')
        self.assertTrue(get_setting('LOG_ERRORS'))


# ============================================================================
# DJANGO REQUEST CYCLE
# ============================================================================

@override_settings(ROOT_URLCONF='errorguard.tests')
class RequestCycleTestCase(TestCase):
    def setUp(self):
        error_handler.initialize(logging_enabled=True)
        self.addCleanup(error_handler.uninstall)

    def test_normal_request_is_untouched(self):
        with self.assertNoLogs('errorguard.faults', level='ERROR'):
            response = self.client.get('/ok/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b'all good')

    def test_uncaught_exception_renders_anonymous_report(self):
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            response = self.client.get('/raise/')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(len(cm.records), 1)
        self.assertIn('Uncaught RangeFault: index out of range', cm.records[0].getMessage())
        self.assertNotContains(response, 'index out of range', status_code=500)
        self.assertContains(response, cm.records[0].correlation_id, status_code=500)

    def test_warning_scenario(self):
        with mock.patch('errorguard.records.generate_correlation_id', return_value='abcde'), \
                self.assertLogs('errorguard.faults', level='ERROR') as cm:
            response = self.client.get('/warning/')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(len(cm.records), 1)
        self.assertRegex(cm.records[0].getMessage(), LOG_LINE)
        self.assertNotContains(response, 'calc.x', status_code=500)
        self.assertNotContains(response, 'kept running', status_code=500)
        self.assertContains(response, 'abcde', status_code=500)

    def test_warning_outside_reporting_level_is_not_reported(self):
        with self.assertNoLogs('errorguard.faults', level='ERROR'):
            response = self.client.get('/deprecation/')
        self.assertEqual(response.status_code, 200)

    def test_reporting_level_masks_runtime_signals(self):
        with self.settings(ERRORGUARD={'REPORTING_LEVEL': E_WARNING}):
            error_handler.initialize(logging_enabled=True)
            with self.assertNoLogs('errorguard.faults', level='ERROR'):
                response = self.client.get('/user-warning/')
        self.assertEqual(response.status_code, 200)

    def test_warning_outside_a_request_goes_to_logging(self):
        with self.assertLogs('py.warnings', level='WARNING'):
            warnings.warn('import time notice', RuntimeWarning)

    def test_caught_exception_ends_the_request(self):
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            response = self.client.get('/caught/')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(len(cm.records), 1)
        self.assertTrue(cm.records[0].getMessage().startswith('Caught RangeFault: index out of range'))
        self.assertNotContains(response, 'kept running', status_code=500)

    def test_http404_is_left_to_django(self):
        with self.assertNoLogs('errorguard.faults', level='ERROR'):
            response = self.client.get('/missing/')
        self.assertEqual(response.status_code, 404)

    def test_staff_users_get_the_verbose_report(self):
        user = get_user_model().objects.create_user('dev', password='pw', is_staff=True)
        self.client.force_login(user)

        response = self.client.get('/raise/')

        self.assertContains(response, 'Uncaught RangeFault: index out of range', status_code=500)
        self.assertContains(response, 'errorguard.tests.raising_view', status_code=500)
        self.assertContains(response, 'Trace :', status_code=500)

    def test_verbose_mode_does_not_carry_over_to_the_next_request(self):
        user = get_user_model().objects.create_user('dev', password='pw', is_staff=True)
        staff_client = Client()
        staff_client.force_login(user)
        staff_client.get('/raise/')

        response = self.client.get('/raise/')
        self.assertNotContains(response, 'index out of range', status_code=500)

    @override_settings(MIDDLEWARE=[
        'errorguard.middleware.ErrorGuardMiddleware',
        'errorguard.tests.ExplodingMiddleware',
    ])
    def test_failure_outside_views_is_caught_at_end_of_request(self):
        client = Client(raise_request_exception=False)
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            response = client.get('/middleware-fault/')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(len(cm.records), 1)
        self.assertTrue(cm.records[0].getMessage().startswith(
            'Fatal Error: MemoryError: out of memory in middleware in '
        ))
        self.assertContains(response, cm.records[0].correlation_id, status_code=500)

    def test_except_exception_cannot_resume_after_a_warning(self):
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            response = self.client.get('/swallowed-warning/')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(len(cm.records), 1)
        self.assertNotContains(response, 'kept running', status_code=500)
        self.assertContains(response, cm.records[0].correlation_id, status_code=500)

    def test_except_exception_cannot_resume_after_handle(self):
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            response = self.client.get('/swallowed-handle/')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(len(cm.records), 1)
        self.assertTrue(cm.records[0].getMessage().startswith('Caught RangeFault'))
        self.assertNotContains(response, 'kept running', status_code=500)

    def test_repeated_custom_warnings_are_reported_every_time(self):
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            statuses = [self.client.get('/custom-warning/').status_code for _ in range(3)]

        self.assertEqual(statuses, [500, 500, 500])
        self.assertEqual(len(cm.records), 3)
        self.assertIn('carrier quote is stale', cm.records[2].getMessage())

    @override_settings(MIDDLEWARE=[
        'errorguard.middleware.ErrorGuardMiddleware',
        'errorguard.tests.ExplodingMiddleware',
    ])
    def test_warning_in_inner_middleware_is_reported_once(self):
        with self.assertLogs('errorguard.faults', level='ERROR') as cm:
            response = self.client.get('/middleware-warning/')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(len(cm.records), 1)
        self.assertIn('session cache is stale', cm.records[0].getMessage())
        self.assertNotContains(response, 'all good', status_code=500)
        self.assertContains(response, cm.records[0].correlation_id, status_code=500)

    def test_warning_while_rendering_a_report_is_not_reported_again(self):
        original = error_handler.renderer.render

        def render(record, verbose):
            warnings.warn('template fallback used', RuntimeWarning)
            return original(record, verbose)

        with mock.patch.object(error_handler.renderer, 'render', side_effect=render), \
                self.assertLogs('py.warnings', level='WARNING') as shown, \
                self.assertLogs('errorguard.faults', level='ERROR') as cm:
            response = self.client.get('/raise/')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(len(cm.records), 1)
        self.assertIn('Uncaught RangeFault', cm.records[0].getMessage())
        self.assertIn('template fallback used', shown.records[0].getMessage())

    def test_handle_shortcut_never_returns(self):
        with self.assertRaises(TerminateRequest) as cm:
            handle(RangeFault('index out of range'))
        self.assertEqual(cm.exception.outcome.record.category, 'Caught RangeFault')


# ============================================================================
# LOG LOOKUP COMMAND
# ============================================================================

class LookupCommandTestCase(SimpleTestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.logs_dir = Path(tmp.name)
        (self.logs_dir / 'errorguard.log').write_text(
            '[ERROR] 2026-10-19 10:00:00 | errorguard.faults | Warning: a in b.py:1 [abcde]\n'
            '[ERROR] 2026-10-19 10:05:00 | errorguard.faults | Warning: c in d.py:2 [12345]\n',
            encoding='utf-8',
        )
        (self.logs_dir / 'errorguard.log.1').write_text(
            '[ERROR] 2026-10-18 09:00:00 | errorguard.faults | Notice: e in f.py:3 [abcde]\n',
            encoding='utf-8',
        )

    def run_command(self, *args):
        out = StringIO()
        with self.settings(LOGS_DIR=self.logs_dir):
            call_command('errorguard_lookup', *args, stdout=out)
        return out.getvalue()

    def test_finds_lines_in_current_and_rotated_files(self):
        output = self.run_command('ABCDE')
        self.assertIn('Warning: a in b.py:1 [abcde]', output)
        self.assertIn('Notice: e in f.py:3 [abcde]', output)
        self.assertNotIn('[12345]', output)
        self.assertIn('2 line(s) found', output)

    def test_reports_when_nothing_matches(self):
        self.assertIn('No log line found', self.run_command('fffff'))

    def test_rejects_malformed_ids(self):
        with self.assertRaises(CommandError):
            self.run_command('not-an-id')

    def test_missing_log_file(self):
        with self.assertRaises(CommandError):
            self.run_command('abcde', '--file', 'other.log')
