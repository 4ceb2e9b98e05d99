import logging

from django.conf import settings
from django.utils.module_loading import import_string


def test_json_formatter_resolves():
    formatter_cls = import_string(settings.LOGGING["formatters"]["json"]["()"])
    assert issubclass(formatter_cls, logging.Formatter)
    assert formatter_cls.__module__ == "pythonjsonlogger.json"
