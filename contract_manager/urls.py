from django.conf import settings
from django.contrib import admin
from django.test.signals import setting_changed
from django.urls import path


def _build_urlpatterns():
    patterns = []
    if settings.ENABLE_DJANGO_ADMIN:
        patterns.append(path("admin/", admin.site.urls))
    return patterns


urlpatterns = _build_urlpatterns()


def _reload_urlpatterns(**kwargs):
    if kwargs.get("setting") == "ENABLE_DJANGO_ADMIN":
        global urlpatterns
        urlpatterns = _build_urlpatterns()


setting_changed.connect(_reload_urlpatterns)
