class TerminateRequest(BaseException):
    """
    Unwinds application code after a failure has been reported.

    Raised from places that cannot return a response themselves (a warning
    hook, the ``handle()`` shortcut); ``ErrorGuardMiddleware`` catches it and
    answers with the carried outcome. Like ``SystemExit`` it does not derive
    from ``Exception``, so ``except Exception`` blocks in application code
    cannot resume the request.
    """

    def __init__(self, outcome):
        super().__init__(f"Request terminated by error report {outcome.record.correlation_id}")
        self.outcome = outcome
