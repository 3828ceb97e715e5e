import warnings

from django.conf import settings
from django.http import HttpResponse
from django.urls import path

from errorguard.shortcuts import handle


def home(request):
    return HttpResponse("OK")


def trigger_error(request):
    division_by_zero = 1 / 0


def trigger_warning(request):
    warnings.warn("Something looks off", RuntimeWarning)
    return HttpResponse("unreachable once the warning is reported")


def trigger_caught(request):
    try:
        {}['missing']
    except KeyError as e:
        handle(e)


urlpatterns = [
    path('', home, name='home'),
]

# Development-only routes to see both report pages
if settings.DEBUG:
    urlpatterns += [
        path('errorguard-debug/exception/', trigger_error),
        path('errorguard-debug/warning/', trigger_warning),
        path('errorguard-debug/caught/', trigger_caught),
    ]
