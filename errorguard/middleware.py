import logging
import time

from .conf import get_setting, ignored_exceptions
from .errors import TerminateRequest
from .handler import error_handler

logger = logging.getLogger(__name__)


class ErrorGuardMiddleware:
    """
    Request-dispatch boundary for captured failures.

    Turns the ``Terminate`` outcome of any channel into the final response,
    so no view or middleware code runs after a report has been rendered.
    Place it first in ``MIDDLEWARE``:

        MIDDLEWARE = [
            'errorguard.middleware.ErrorGuardMiddleware',
            ...
            'django.contrib.auth.middleware.AuthenticationMiddleware',
            'errorguard.middleware.DeveloperModeMiddleware',
        ]
    """

    def __init__(self, get_response, handler=None):
        self.get_response = get_response
        self.handler = handler or error_handler

    def __call__(self, request):
        request.errorguard_started_at = time.time()
        host = self.handler.host
        token = host.begin_request(request)
        # Anonymous until DeveloperModeMiddleware knows better
        self.handler.set_developer_mode(False)
        try:
            response = self.get_response(request)
            outcome = host.dispatch_exit()
        except TerminateRequest as e:
            # Django's per-middleware handlers only catch Exception
            outcome = e.outcome
        finally:
            host.end_request(token)

        if outcome is not None:
            return outcome.as_response()
        return response

    def process_exception(self, request, exception):
        if isinstance(exception, ignored_exceptions()):
            return None

        outcome = self.handler.host.dispatch_uncaught(exception)
        if outcome is None:
            logger.warning(
                "No uncaught-fault hook installed, leaving %s to Django",
                type(exception).__name__,
            )
            return None
        return outcome.as_response()


class DeveloperModeMiddleware:
    """
    Switches to verbose reports for developers.

    Must come after ``AuthenticationMiddleware``; a user counts as a
    developer when the attribute named by ``DEVELOPER_ATTRIBUTE`` is true.
    """

    def __init__(self, get_response, handler=None):
        self.get_response = get_response
        self.handler = handler or error_handler

    def __call__(self, request):
        user = getattr(request, 'user', None)
        attribute = get_setting('DEVELOPER_ATTRIBUTE')
        self.handler.set_developer_mode(getattr(user, attribute, False))
        return self.get_response(request)
