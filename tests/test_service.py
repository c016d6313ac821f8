import json
from unittest.mock import MagicMock

import pytest
import requests

from alert_notifier.core.models import ReceiverConfig
from alert_notifier.services import NotificationService

PAYLOAD = {
    "receiver": "hook",
    "status": "firing",
    "groupKey": "gk",
    "groupLabels": {"alertname": "HighCPU"},
    "alerts": [
        {
            "status": "firing",
            "labels": {"alertname": "HighCPU"},
            "annotations": {},
            "startsAt": "2024-01-15T10:30:00Z",
        }
    ],
}

RESOLVED_PAYLOAD = {
    "alerts": [
        {
            "labels": {"alertname": "HighCPU"},
            "startsAt": "2024-01-15T10:00:00Z",
            "endsAt": "2024-01-15T10:20:00Z",
        }
    ],
}


def receivers(**overrides):
    cfgs = {
        "hook": ReceiverConfig(name="hook", type="webhook", settings={"url": "http://example.com/hook"}),
        "other": ReceiverConfig(name="other", type="webhook", settings={"url": "http://example.com/other"}),
    }
    cfgs.update(overrides)
    return cfgs


@pytest.fixture
def senders():
    return {}


@pytest.fixture
def sender_factory(senders):
    def build(cfg):
        senders[cfg.name] = MagicMock()
        return senders[cfg.name]
    return build


def test_payload_receiver_is_only_target(factory, senders, sender_factory):
    service = NotificationService({}, receivers(), factory, sender_factory=sender_factory)

    result = service.process_webhook(PAYLOAD)

    assert result == {"ok": True, "results": [{"receiver": "hook", "status": "sent"}]}
    assert list(senders) == ["hook"]
    body = json.loads(senders["hook"].send_webhook.call_args[0][0].body)
    assert body["groupKey"] == "gk"
    assert body["title"] == "[FIRING:1] HighCPU "


def test_unknown_receiver_fans_out(factory, senders, sender_factory):
    service = NotificationService({}, receivers(), factory, sender_factory=sender_factory)

    result = service.process_webhook(dict(PAYLOAD, receiver="elsewhere"))

    assert [r["receiver"] for r in result["results"]] == ["hook", "other"]
    assert all(r["status"] == "sent" for r in result["results"])


def test_receiver_instances_are_cached(factory, sender_factory):
    service = NotificationService({}, receivers(), factory, sender_factory=sender_factory)
    assert service.get_receiver("hook") is service.get_receiver("hook")


def test_unparseable_payload(factory, sender_factory):
    service = NotificationService({}, receivers(), factory, sender_factory=sender_factory)
    assert service.process_webhook({"foo": "bar"}) == {"ok": False, "error": "无法解析告警数据格式"}


def test_disabled_and_resolved_receivers_are_skipped(factory, senders, sender_factory):
    cfgs = receivers(
        hook=ReceiverConfig(name="hook", type="webhook", enabled=False, settings={"url": "http://x"}),
        other=ReceiverConfig(name="other", type="webhook", disable_resolve_message=True, settings={"url": "http://y"}),
    )
    service = NotificationService({}, cfgs, factory, sender_factory=sender_factory)

    results = service.process_webhook(RESOLVED_PAYLOAD)["results"]

    assert [(r["receiver"], r["status"]) for r in results] == [("hook", "skipped"), ("other", "skipped")]
    assert senders == {}


def test_missing_receiver(factory, sender_factory, ctx):
    service = NotificationService({}, receivers(), factory, sender_factory=sender_factory)
    assert service.notify_receiver("nope", ctx, [])["status"] == "error"


def test_invalid_receiver_config(factory, sender_factory):
    cfgs = {"hook": ReceiverConfig(name="hook", type="webhook", settings={})}
    service = NotificationService({}, cfgs, factory, sender_factory=sender_factory)

    result = service.process_webhook(PAYLOAD)["results"][0]
    assert result["status"] == "error"
    assert result["kind"] == "config"


def test_template_error_is_reported(factory, senders, sender_factory):
    cfgs = {"hook": ReceiverConfig(name="hook", type="webhook", settings={"url": "http://x", "title": "{{ 1 / 0 }}"})}
    service = NotificationService({}, cfgs, factory, sender_factory=sender_factory)

    result = service.process_webhook(PAYLOAD)["results"][0]

    assert result["status"] == "error"
    assert result["kind"] == "template"
    senders["hook"].send_webhook.assert_not_called()


def test_delivery_error_is_reported_per_receiver(factory, senders):
    def sender_factory(cfg):
        sender = MagicMock()
        if cfg.name == "hook":
            response = requests.Response()
            response.status_code = 500
            sender.send_webhook.side_effect = requests.HTTPError("500 Server Error", response=response)
        senders[cfg.name] = sender
        return sender

    service = NotificationService({}, receivers(), factory, sender_factory=sender_factory)
    results = service.process_webhook(dict(PAYLOAD, receiver=""))["results"]

    assert results[0] == {"receiver": "hook", "status": "error", "error": "500 Server Error", "kind": "delivery"}
    assert results[1] == {"receiver": "other", "status": "sent"}
