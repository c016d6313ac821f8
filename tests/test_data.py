import json

import pytest

from alert_notifier.core.models import NotificationContext
from alert_notifier.templates.data import KV, get_template_data
from alert_notifier.templates.defaults import DEFAULT_MESSAGE_EMBED, DEFAULT_MESSAGE_TITLE_EMBED
from alert_notifier.templates.extend import (
    DASHBOARD_UID_ANNOTATION,
    IMAGE_URL_ANNOTATION,
    PANEL_ID_ANNOTATION,
    VALUE_STRING_ANNOTATION,
    VALUES_ANNOTATION,
    EvalValue,
    extend_alert,
    extend_data,
    parse_eval_values,
    parse_values,
    remove_private_items,
)
from alert_notifier.templates.renderer import tmpl_text

from .conftest import NOW, make_alert


def test_kv_sorted_pairs_alertname_first():
    kv = KV({"zone": "a", "alertname": "High", "app": "web"})
    assert kv.names() == ["alertname", "app", "zone"]
    assert kv.sorted_values() == ["High", "web", "a"]
    assert kv.remove(["app"]) == {"zone": "a", "alertname": "High"}
    assert "app" in kv


def test_template_data_status_and_common_labels(ctx):
    alerts = [
        make_alert({"alertname": "alert1", "lbl1": "val1", "pod": "a"}, {"ann1": "x"}),
        make_alert({"alertname": "alert1", "lbl1": "val1", "pod": "b"}, {"ann1": "x"}, resolved=True),
    ]
    data = get_template_data(ctx, "http://localhost", alerts)

    assert data.status == "firing"
    assert data.receiver == "my-receiver"
    assert [a.status for a in data.alerts] == ["firing", "resolved"]
    assert data.alerts[0].ends_at is None
    assert data.alerts[1].ends_at is not None
    assert data.common_labels == {"alertname": "alert1", "lbl1": "val1"}
    assert data.common_annotations == {"ann1": "x"}
    assert len(data.alerts.firing()) == 1
    assert len(data.alerts.resolved()) == 1


def test_template_data_all_resolved():
    ctx = NotificationContext(now=NOW)
    data = get_template_data(ctx, "", [make_alert({"a": "b"}, resolved=True)])
    assert data.status == "resolved"


def test_template_data_without_context_logs_error(logger):
    data = get_template_data(None, "http://localhost", [make_alert({"a": "b"})], logger)
    assert data.receiver == ""
    assert data.group_labels == {}
    logger.error.assert_called_once()


def test_fingerprint_matches_prometheus():
    alert = make_alert({"alertname": "alert1", "lbl1": "val1"})
    assert alert.fingerprint() == "fac0861a85de433a"


def test_remove_private_items():
    assert remove_private_items({"__private__": "x", "public": "y", "__alert_rule_uid__": "z"}) == {"public": "y"}


def test_extend_alert_urls(ctx):
    alert = make_alert(
        {"alertname": "alert1", "lbl1": "val1", "__alert_rule_uid__": "uid"},
        {DASHBOARD_UID_ANNOTATION: "dash", PANEL_ID_ANNOTATION: "3", IMAGE_URL_ANNOTATION: "http://img/1.png"},
    )
    data = get_template_data(ctx, "http://localhost:3000/grafana/", [alert])
    extended = extend_alert(data.alerts[0], data.external_url)

    assert extended.dashboard_url == "http://localhost:3000/grafana/d/dash"
    assert extended.panel_url == "http://localhost:3000/grafana/d/dash?viewPanel=3"
    assert extended.silence_url == (
        "http://localhost:3000/grafana/alerting/silence/new"
        "?alertmanager=grafana&matcher=alertname%3Dalert1&matcher=lbl1%3Dval1"
    )
    assert extended.image_url == "http://img/1.png"
    assert "__alert_rule_uid__" not in extended.labels
    assert extended.annotations == {}


def test_extend_alert_without_external_url(ctx):
    data = get_template_data(ctx, "", [make_alert({"alertname": "a"}, {DASHBOARD_UID_ANNOTATION: "d"})])
    extended = extend_alert(data.alerts[0], "")
    assert extended.dashboard_url == ""
    assert extended.silence_url == ""
    assert extended.fingerprint == data.alerts[0].fingerprint


def test_extend_alert_values(ctx, logger):
    alert = make_alert({"alertname": "a"}, {VALUES_ANNOTATION: json.dumps({"B": 1.5, "A": 2})})
    data = get_template_data(ctx, "http://localhost", [alert])
    assert extend_alert(data.alerts[0], data.external_url, logger).values == {"B": 1.5, "A": 2.0}

    broken = make_alert({"alertname": "a"}, {VALUES_ANNOTATION: "{not json"})
    data = get_template_data(ctx, "http://localhost", [broken])
    assert extend_alert(data.alerts[0], data.external_url, logger).values is None
    logger.warning.assert_called_once()


def test_extend_data_to_dict(ctx):
    alert = make_alert({"alertname": "alert1", "__private__": "x"}, {"summary": "s"}, generator_url="http://gen")
    ctx.group_labels = {"alertname": "alert1", "__private__": "x"}
    data = extend_data(get_template_data(ctx, "http://localhost", [alert]))

    assert data.group_labels == {"alertname": "alert1"}
    payload = data.to_dict()
    assert payload["receiver"] == "my-receiver"
    assert payload["status"] == "firing"
    assert payload["externalURL"] == "http://localhost"
    assert payload["commonLabels"] == {"alertname": "alert1"}
    first = payload["alerts"][0]
    assert first["labels"] == {"alertname": "alert1"}
    assert first["generatorURL"] == "http://gen"
    assert first["values"] is None
    assert "imageURL" not in first


def test_parse_eval_values():
    text = "[ var='A' metric='cpu' labels={host=a} value=10 ], [ var='B' labels={} value=0.5 ]"
    assert parse_eval_values(text) == [
        EvalValue(var="A", metric="cpu", labels="{host=a}", value="10"),
        EvalValue(var="B", metric="", labels="{}", value="0.5"),
    ]
    assert parse_eval_values("") == []


def test_value_string_is_kept(ctx):
    alert = make_alert({"alertname": "a"}, {VALUE_STRING_ANNOTATION: "[ var='A' labels={} value=1 ]"})
    data = extend_data(get_template_data(ctx, "http://localhost", [alert]))
    assert data.alerts[0].value_string == "[ var='A' labels={} value=1 ]"
    assert data.alerts[0].eval_values[0].var == "A"


@pytest.mark.parametrize("values", ['{"A": "1.5"}', '{"A": true}', '{"A": NaN}', '{"A": Infinity}', "[1, 2]"])
def test_parse_values_rejects_non_numbers(values):
    with pytest.raises(ValueError):
        parse_values(values)


def test_extend_alert_ignores_non_numeric_values(ctx, logger):
    alert = make_alert({"alertname": "a"}, {VALUES_ANNOTATION: '{"A": 1, "B": "2"}'})
    data = get_template_data(ctx, "http://localhost", [alert])
    assert extend_alert(data.alerts[0], data.external_url, logger).values is None
    logger.warning.assert_called_once()


def test_extended_output_is_independent_of_label_order(ctx, factory):
    labels = {"alertname": "alert1", "team name": "a&b c", "env/region": "eu=1", "__alert_rule_uid__": "uid"}
    shuffled = dict(reversed(list(labels.items())))
    tmpl = factory.get_template("Grafana")

    first, first_data = tmpl_text(ctx, tmpl, [make_alert(labels, {"b": "2", "a": "1"})])
    second, second_data = tmpl_text(ctx, tmpl, [make_alert(shuffled, {"a": "1", "b": "2"})])

    assert first_data.alerts[0].silence_url == (
        "http://localhost/alerting/silence/new?alertmanager=grafana"
        "&matcher=alertname%3Dalert1&matcher=env%2Fregion%3Deu%3D1&matcher=team+name%3Da%26b+c"
    )
    assert first_data.alerts[0].silence_url == second_data.alerts[0].silence_url
    assert first_data.alerts[0].fingerprint == second_data.alerts[0].fingerprint
    assert first(DEFAULT_MESSAGE_EMBED) == second(DEFAULT_MESSAGE_EMBED)
    assert first(DEFAULT_MESSAGE_TITLE_EMBED) == second(DEFAULT_MESSAGE_TITLE_EMBED)
