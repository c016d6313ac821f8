import textwrap

import pytest

from alert_notifier.core.config import load_config, load_receivers, load_template_settings
from alert_notifier.core.logging_config import _parse_level
from alert_notifier.templates.definitions import Kind
from alert_notifier.templates.errors import InvalidKindError, InvalidLimitsError

CONFIG = """
logging:
  log_dir: logs
  log_file: alert-notifier.log
  level: INFO
  max_bytes: 1024
  backup_count: 1

proxy: socks5://127.0.0.1:1080

templates:
  org_id: "1"
  external_url: http://grafana.local/
  tenant_id: tenant-a
  limits:
    max_template_output_size: 2048
  definitions:
    - name: inline
      kind: Grafana
      template: '{% define "a" %}A{% enddefine %}'
    - name: from_file
      kind: mimir
      file: custom.tmpl

receivers:
  hook:
    type: webhook
    url: http://example.com/hook
    max_alerts: 10
  tg:
    type: telegram
    enabled: false
    proxy: none
    bot_token: token
    chat_id: "42"
"""


@pytest.fixture
def config_file(tmp_path):
    (tmp_path / "custom.tmpl").write_text('{% define "b" %}B{% enddefine %}', encoding="utf-8")
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


def test_load_config(config_file):
    raw, settings, receivers = load_config(config_file)

    assert raw["logging"]["level"] == "INFO"
    assert settings.org_id == "1"
    assert settings.external_url == "http://grafana.local/"
    assert settings.tenant_id == "tenant-a"
    assert settings.limits.max_template_output_size == 2048
    assert [(d.name, d.kind) for d in settings.definitions] == [("inline", Kind.GRAFANA), ("from_file", Kind.MIMIR)]
    assert settings.definitions[1].template == '{% define "b" %}B{% enddefine %}'

    hook = receivers["hook"]
    assert hook.type == "webhook"
    assert hook.settings == {"url": "http://example.com/hook", "max_alerts": 10}
    assert hook.proxy == {"http": "socks5h://127.0.0.1:1080", "https": "socks5h://127.0.0.1:1080"}
    assert receivers["tg"].enabled is False
    assert receivers["tg"].proxy is None


def test_config_file_from_env(config_file, monkeypatch):
    monkeypatch.setenv("CONFIG_FILE", str(config_file))
    _, settings, _ = load_config()
    assert settings.tenant_id == "tenant-a"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_logging_node_required(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("receivers: {}\n", encoding="utf-8")
    with pytest.raises(ValueError, match="logging"):
        load_config(path)


def test_logging_fields_required(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent("""
        logging:
          log_dir: logs
        receivers: {}
    """), encoding="utf-8")
    with pytest.raises(ValueError, match="log_file"):
        load_config(path)


def test_template_settings_errors():
    with pytest.raises(InvalidKindError):
        load_template_settings({"templates": {"definitions": [{"name": "x", "kind": "loki", "template": ""}]}})
    with pytest.raises(ValueError, match="template 或 file"):
        load_template_settings({"templates": {"definitions": [{"name": "x"}]}})
    with pytest.raises(InvalidLimitsError):
        load_template_settings({"templates": {"limits": {"max_template_output_size": -1}}})


def test_template_settings_defaults():
    settings = load_template_settings({})
    assert settings.org_id == "grafana"
    assert settings.definitions == []
    assert settings.limits.max_template_output_size == 1024 * 1024


def test_receivers_require_type():
    with pytest.raises(ValueError, match="type"):
        load_receivers({"receivers": {"x": {"url": "http://a"}}})
    with pytest.raises(ValueError):
        load_receivers({})


def test_invalid_log_level():
    assert _parse_level("debug") == 10
    with pytest.raises(ValueError, match="logging.level"):
        _parse_level("verbose")
