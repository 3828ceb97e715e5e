from .errors import TerminateRequest
from .handler import error_handler


def handle(exc):
    """
    Report an exception caught by application code and end the request.

    Never returns: the report is rendered right away and the request is
    unwound to ``ErrorGuardMiddleware``, which answers with it.

    Usage:
        try:
            rate = compute_rate(order)
        except RangeFault as e:
            handle(e)
    """
    raise TerminateRequest(error_handler.handle(exc))
