import json
import logging

import structlog

from vm_lifecycle.logging_config import configure_logging


def test_json_output_renders_key_value_events(capsys):
    root = logging.getLogger()
    root.handlers.clear()
    try:
        configure_logging("INFO", json_output=True)
        structlog.get_logger("test").info("vm_deleted", name="web01", resource_group="rg-app")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "vm_deleted"
        assert event["resource_group"] == "rg-app"
        assert event["level"] == "info"
        assert "timestamp" in event
    finally:
        structlog.reset_defaults()
        root.handlers.clear()


def test_level_filters_lower_events(capsys):
    root = logging.getLogger()
    root.handlers.clear()
    try:
        configure_logging("WARNING", json_output=True)
        structlog.get_logger("test").info("quiet")

        assert "quiet" not in capsys.readouterr().out
    finally:
        structlog.reset_defaults()
        root.handlers.clear()
