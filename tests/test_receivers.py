import json
from unittest.mock import MagicMock

import pytest

from alert_notifier.core.models import NotificationContext, ReceiverConfig
from alert_notifier.receivers import (
    Image,
    ImageNotFoundError,
    ImagesDone,
    ImagesUnavailableError,
    TelegramReceiver,
    UnavailableImageStore,
    WebhookReceiver,
    build_receiver,
    with_stored_images,
)
from alert_notifier.receivers.webhook import truncate_alerts
from alert_notifier.templates.definitions import Kind
from alert_notifier.templates.errors import TemplateNotDefinedError, TemplateRenderError

from .conftest import NOW, make_alert


class FakeImageStore:
    def __init__(self, images):
        self.images = images

    def get_image(self, token):
        if token not in self.images:
            raise ImageNotFoundError(token)
        return self.images[token]


def alerts_with_tokens():
    return [
        make_alert({"alertname": "a1"}, {"__alertImageToken__": "t1"}),
        make_alert({"alertname": "a2"}),
        make_alert({"alertname": "a3"}, {"__alertImageToken__": "missing"}),
    ]


@pytest.fixture
def sender():
    return MagicMock()


@pytest.fixture
def ctx():
    return NotificationContext(receiver="hook", group_key="gk", group_labels={"alertname": ""}, now=NOW)


def webhook(factory, sender, logger, **settings):
    settings.setdefault("url", "http://example.com/hook")
    return WebhookReceiver(
        "hook",
        settings=settings,
        template=factory.get_template(Kind.GRAFANA),
        sender=sender,
        logger=logger,
        org_id="1",
    )


def test_webhook_payload(factory, sender, logger, ctx):
    alert = make_alert({"alertname": "alert1", "lbl1": "val1"}, {"ann1": "annv1"})
    receiver = webhook(factory, sender, logger, username="u", password="p")

    assert receiver.notify(ctx, [alert]) is True
    settings = sender.send_webhook.call_args[0][0]
    body = json.loads(settings.body)

    assert settings.url == "http://example.com/hook"
    assert settings.http_method == "POST"
    assert (settings.user, settings.password) == ("u", "p")
    assert body["version"] == "1"
    assert body["groupKey"] == "gk"
    assert body["truncatedAlerts"] == 0
    assert body["orgId"] == 1
    assert body["state"] == "alerting"
    assert body["title"] == "[FIRING:1]  (val1)"
    assert body["message"].startswith("**Firing**\n\nValue: [no value]\n")
    assert body["receiver"] == "hook"
    assert body["alerts"][0]["labels"] == {"alertname": "alert1", "lbl1": "val1"}


def test_webhook_resolved_state_and_truncation(factory, sender, logger, ctx):
    alerts = [make_alert({"alertname": f"a{i}"}, resolved=True) for i in range(3)]
    receiver = webhook(factory, sender, logger, max_alerts=2)
    receiver.notify(ctx, alerts)

    body = json.loads(sender.send_webhook.call_args[0][0].body)
    assert body["state"] == "ok"
    assert body["truncatedAlerts"] == 1
    assert len(body["alerts"]) == 2


def test_webhook_authorization_header(factory, sender, logger, ctx):
    receiver = webhook(factory, sender, logger, authorization_credentials="secret")
    receiver.notify(ctx, [make_alert({"alertname": "a"})])
    assert sender.send_webhook.call_args[0][0].http_headers == {"Authorization": "Bearer secret"}


def test_webhook_config_errors(factory, sender, logger):
    with pytest.raises(ValueError):
        WebhookReceiver("hook", settings={}, template=factory.get_template(Kind.GRAFANA), sender=sender)
    with pytest.raises(ValueError):
        webhook(factory, sender, logger, username="u", password="p", authorization_credentials="c")


def test_webhook_render_failure_does_not_send(factory, sender, logger, ctx):
    receiver = webhook(factory, sender, logger, title='{% include "missing" %}')
    with pytest.raises(TemplateNotDefinedError):
        receiver.notify(ctx, [make_alert({"alertname": "a"})])
    sender.send_webhook.assert_not_called()


def test_webhook_images(factory, sender, logger, ctx):
    store = FakeImageStore({"t1": Image(token="t1", url="http://img/t1.png")})
    receiver = webhook(factory, sender, logger)
    receiver.images = store
    receiver.notify(ctx, alerts_with_tokens())

    body = json.loads(sender.send_webhook.call_args[0][0].body)
    assert body["alerts"][0]["imageURL"] == "http://img/t1.png"
    assert "imageURL" not in body["alerts"][1]
    assert "imageURL" not in body["alerts"][2]


def test_webhook_send_resolved(factory, sender, logger):
    assert webhook(factory, sender, logger).send_resolved()
    receiver = WebhookReceiver(
        "hook", disable_resolve_message=True, settings={"url": "http://x"},
        template=factory.get_template(Kind.GRAFANA), sender=sender,
    )
    assert not receiver.send_resolved()


def telegram(factory, sender, logger, **settings):
    settings.setdefault("bot_token", "abc")
    settings.setdefault("chat_id", "42")
    return TelegramReceiver(
        "tg", settings=settings, template=factory.get_template(Kind.GRAFANA), sender=sender, logger=logger
    )


def test_telegram_message(factory, sender, logger, ctx):
    receiver = telegram(factory, sender, logger, message="hello {{ receiver }}", disable_notifications=True)
    receiver.notify(ctx, [make_alert({"alertname": "a"})])

    settings = sender.send_webhook.call_args[0][0]
    assert settings.url == "https://api.telegram.org/botabc/sendMessage"
    assert settings.http_headers["Content-Type"].startswith("multipart/form-data; boundary=")
    body = settings.body.decode("utf-8")
    assert 'name="chat_id"\r\n\r\n42\r\n' in body
    assert 'name="text"\r\n\r\nhello hook\r\n' in body
    assert 'name="parse_mode"\r\n\r\nHTML\r\n' in body
    assert 'name="disable_notification"\r\n\r\ntrue\r\n' in body


def test_telegram_truncates_long_message(factory, sender, logger, ctx):
    receiver = telegram(factory, sender, logger, message="{{ 'x' * 5000 }}", parse_mode="None")
    fields = receiver.build_message_fields(ctx, [make_alert({"alertname": "a"})])

    text = dict(fields)["text"]
    assert len(text) == 4096
    assert text.endswith("…")
    assert "parse_mode" not in dict(fields)
    logger.warning.assert_called_once()


def test_telegram_render_failure(factory, sender, logger, ctx):
    receiver = telegram(factory, sender, logger, message="{{ 1 / 0 }}")
    with pytest.raises(TemplateRenderError):
        receiver.notify(ctx, [make_alert({"alertname": "a"})])
    sender.send_webhook.assert_not_called()


def test_telegram_uploads_images(factory, sender, logger, ctx, tmp_path):
    png = tmp_path / "shot.png"
    png.write_bytes(b"\x89PNG\r\n\x1a\nfake")
    receiver = telegram(factory, sender, logger)
    receiver.images = FakeImageStore({"t1": Image(token="t1", path=str(png))})
    receiver.notify(ctx, alerts_with_tokens())

    urls = [c[0][0].url for c in sender.send_webhook.call_args_list]
    assert urls == ["https://api.telegram.org/botabc/sendMessage", "https://api.telegram.org/botabc/sendPhoto"]
    assert b'filename="shot.png"' in sender.send_webhook.call_args_list[1][0][0].body


@pytest.mark.parametrize("settings", [{"chat_id": "1"}, {"bot_token": "t"}, {"bot_token": "t", "chat_id": "1", "parse_mode": "rich"}])
def test_telegram_config_errors(factory, sender, settings):
    with pytest.raises(ValueError):
        TelegramReceiver("tg", settings=settings, template=factory.get_template(Kind.GRAFANA), sender=sender)


def test_with_stored_images_skips_missing(logger):
    seen = []
    store = FakeImageStore({"t1": Image(token="t1")})
    with_stored_images(store, lambda i, img: seen.append((i, img.token)), alerts_with_tokens(), logger)
    assert seen == [(0, "t1")]


def test_with_stored_images_unavailable(logger):
    seen = []
    with_stored_images(UnavailableImageStore(), lambda i, img: seen.append(i), alerts_with_tokens(), logger)
    with_stored_images(None, lambda i, img: seen.append(i), alerts_with_tokens(), logger)
    assert seen == []


def test_with_stored_images_done_and_errors(logger):
    store = FakeImageStore({"t1": Image(token="t1"), "t2": Image(token="t2")})
    alerts = [make_alert({"a": "1"}, {"__alertImageToken__": "t1"}), make_alert({"a": "2"}, {"__alertImageToken__": "t2"})]

    seen = []

    def stop(i, img):
        seen.append(i)
        raise ImagesDone()

    with_stored_images(store, stop, alerts, logger)
    assert seen == [0]

    def fail(i, img):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        with_stored_images(store, fail, alerts, logger)
    logger.error.assert_called_once()


def test_image_store_errors_propagate(logger):
    store = MagicMock()
    store.get_image.side_effect = OSError("disk")
    with pytest.raises(OSError):
        with_stored_images(store, lambda i, img: None, alerts_with_tokens(), logger)
    assert isinstance(ImagesUnavailableError(), Exception)


def test_truncate_alerts():
    assert truncate_alerts(0, [1, 2, 3]) == ([1, 2, 3], 0)
    assert truncate_alerts(2, [1, 2, 3]) == ([1, 2], 1)


def test_build_receiver(factory, sender):
    cfg = ReceiverConfig(name="hook", type="webhook", uid="u1", settings={"url": "http://x", "template_kind": "Mimir"})
    receiver = build_receiver(cfg, factory, sender)
    assert isinstance(receiver, WebhookReceiver)
    assert receiver.uid == "u1"
    assert receiver.template.kind is Kind.MIMIR
    assert receiver.org_id == "grafana"

    with pytest.raises(ValueError):
        build_receiver(ReceiverConfig(name="x", type="carrier-pigeon"), factory, sender)
