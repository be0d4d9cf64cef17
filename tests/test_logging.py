import json
import logging
import sys

from app.logging import JsonLogFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="app.services.polar_sync",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Sync completed: created %d subscriptions",
        args=(3,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_known_extras():
    line = JsonLogFormatter().format(
        _record(
            admin_id="admin_1",
            webhook_id="msg_1",
            sync_type="all",
            duration_ms=12.5,
            secret="x",
        )
    )
    payload = json.loads(line)

    assert payload["message"] == "Sync completed: created 3 subscriptions"
    assert payload["level"] == "INFO"
    assert payload["admin_id"] == "admin_1"
    assert payload["webhook_id"] == "msg_1"
    assert payload["sync_type"] == "all"
    assert payload["duration_ms"] == 12.5
    assert "secret" not in payload


def test_json_formatter_renders_exceptions():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()
    payload = json.loads(JsonLogFormatter().format(record))
    assert "RuntimeError: boom" in payload["exception"]
