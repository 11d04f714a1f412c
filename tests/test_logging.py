import json

from phrase_analyzer import logging as app_logging


def test_sensitive_keys_are_masked():
    event = app_logging._sanitize_event_dict(
        None,
        "info",
        {
            "event": "llm_call",
            "api_key": "sk-abcdefghijklmnop",
            "headers": {"Authorization": "short"},
            "attempt": 2,
        },
    )
    assert event["api_key"] == "sk-a…mnop"
    assert event["headers"]["Authorization"] == "***"
    assert event["attempt"] == 2


def test_known_secret_literals_are_masked_inside_messages(monkeypatch):
    monkeypatch.setattr(app_logging.settings, "openai_api_key", "sk-live-secret-value-1234")
    event = app_logging._sanitize_event_dict(
        None, "error", {"event": "model_call_failed", "error": "auth failed for sk-live-secret-value-1234"}
    )
    assert "sk-live-secret-value-1234" not in event["error"]
    assert event["error"].endswith("sk-l…1234")


def test_logs_are_rendered_as_json(capsys):
    app_logging.configure_logging()
    app_logging.get_logger("workflow").info("workflow_complete", action="execute", success=True)
    lines = [line for line in capsys.readouterr().err.splitlines() if "workflow_complete" in line]
    assert lines
    record = json.loads(lines[-1])
    assert record["event"] == "workflow_complete"
    assert record["component"] == "workflow"
    assert record["action"] == "execute"
    assert record["level"] == "info"
    assert "timestamp" in record
