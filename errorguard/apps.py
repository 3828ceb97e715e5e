from django.apps import AppConfig


class ErrorGuardConfig(AppConfig):
    name = "errorguard"
    verbose_name = "Error guard"

    def ready(self):
        from .conf import get_setting
        from .handler import error_handler
        from .reports import LoggingSink, ReportRenderer

        error_handler.renderer = ReportRenderer(time_zone=get_setting('TIME_ZONE'))
        error_handler.sink = LoggingSink(get_setting('LOGGER'))
        error_handler.initialize(logging_enabled=get_setting('LOG_ERRORS'))
