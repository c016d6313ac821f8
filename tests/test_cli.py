import json
from unittest.mock import patch

import pytest

from alert_notifier import cli


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
logging:
  log_dir: {tmp_path / "logs"}
  log_file: alert-notifier.log
  level: INFO
  max_bytes: 1024
  backup_count: 1
templates:
  external_url: http://grafana.local/
receivers:
  hook:
    type: webhook
    url: http://example.com/hook
""",
        encoding="utf-8",
    )
    return path


def write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_preview_command(config_file, tmp_path, capsys):
    template = tmp_path / "t.tmpl"
    template.write_text('{% define "t" %}{{ receiver }} {{ alerts | length }}{% enddefine %}', encoding="utf-8")
    alerts = write_json(tmp_path / "alerts.json", [{"labels": {"alertname": "a"}}])

    code = cli.main(["--config", str(config_file), "preview", str(template), "--name", "t", "--alerts", alerts])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output == {"results": [{"name": "t", "text": "TestReceiver 1", "scope": "."}], "errors": []}


def test_send_command(config_file, tmp_path, capsys):
    payload = write_json(tmp_path / "payload.json", {"receiver": "hook", "alerts": [{"labels": {"alertname": "a"}}]})

    with patch("alert_notifier.services.notification_service.RequestsWebhookSender") as sender_cls:
        code = cli.main(["--config", str(config_file), "send", payload])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"ok": True, "results": [{"receiver": "hook", "status": "sent"}]}
    sender_cls.return_value.send_webhook.assert_called_once()


def test_send_command_unparseable_payload(config_file, tmp_path, capsys):
    payload = write_json(tmp_path / "payload.json", {"foo": "bar"})
    assert cli.main(["--config", str(config_file), "send", payload]) == 1
    assert json.loads(capsys.readouterr().out)["ok"] is False
