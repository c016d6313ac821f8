import pytest

from alert_notifier.templates.definitions import Kind
from alert_notifier.templates.errors import InvalidKindError, TemplateSyntaxError
from alert_notifier.templates.preview import (
    EXECUTION_ERROR,
    INVALID_TEMPLATE,
    SCOPE_ALERT,
    SCOPE_ALERTS,
    SCOPE_ROOT,
    PreviewParams,
    preview_template,
)
from alert_notifier.templates.util import find_top_level_templates

from .conftest import make_alert


def alerts():
    return [make_alert({"alertname": "alert1", "lbl1": "val1"}, {"summary": "disk full"})]


def test_find_top_level_templates():
    text = (
        '{% define "a" %}{% include "b" %}{% enddefine %}'
        '{% define "b" %}B{% enddefine %}'
        '{% define "c" %}C{% enddefine %}'
    )
    assert find_top_level_templates(text) == ["a", "c"]


def test_find_top_level_templates_includes_parse_name():
    assert find_top_level_templates('{{ receiver }}{% define "x" %}X{% enddefine %}', "file") == ["file", "x"]
    assert find_top_level_templates("   ") == []


def test_find_top_level_templates_syntax_error():
    with pytest.raises(TemplateSyntaxError):
        find_top_level_templates('{% define "a" %}{% if %}{% enddefine %}')


def test_preview_root_scope(factory, logger):
    template = '{% define "t" %}{{ receiver }}: {{ alerts | length }}{% enddefine %}'
    results = preview_template(factory, PreviewParams(alerts(), template, "t"), logger)

    assert results.errors == []
    assert [(r.name, r.text, r.scope) for r in results.results] == [("t", "TestReceiver: 1", SCOPE_ROOT)]


def test_preview_alerts_scope(factory, logger):
    template = '{% define "t" %}{% for alert in alert_list %}{{ alert.labels.alertname }}{% endfor %}{% enddefine %}'
    results = preview_template(factory, PreviewParams(alerts(), template, "t"), logger)

    assert [(r.text, r.scope) for r in results.results] == [("alert1", SCOPE_ALERTS)]


def test_preview_alert_scope(factory, logger):
    template = '{% define "t" %}{{ alert.annotations.summary }}{% enddefine %}'
    results = preview_template(factory, PreviewParams(alerts(), template, "t"), logger)

    assert [(r.text, r.scope) for r in results.results] == [("disk full", SCOPE_ALERT)]


def test_preview_replaces_existing_definition_and_sees_defaults(factory, logger):
    template = '{% define "t" %}{% include "default.title" %}{% enddefine %}'
    results = preview_template(factory, PreviewParams(alerts(), template, "t"), logger)
    assert results.results[0].text == "[FIRING:1] group_label_value (alert1 val1)"


def test_preview_invalid_template(factory, logger):
    results = preview_template(factory, PreviewParams(alerts(), '{% define "t" %}', "t"), logger)

    assert results.results == []
    assert [(e.name, e.kind) for e in results.errors] == [("", INVALID_TEMPLATE)]


def test_preview_execution_error(factory, logger):
    template = '{% define "t" %}{% include "missing" %}{% enddefine %}'
    results = preview_template(factory, PreviewParams(alerts(), template, "t"), logger)

    assert results.results == []
    assert results.errors[0].name == "t"
    assert results.errors[0].kind == EXECUTION_ERROR
    assert 'template "missing" not defined' in results.errors[0].error


def test_preview_mimir_kind(factory, logger):
    template = '{% define "t" %}{{ tenantID() }}{% enddefine %}'
    results = preview_template(factory, PreviewParams(alerts(), template, "t", kind=Kind.MIMIR), logger)
    assert results.to_dict() == {"results": [{"name": "t", "text": "test", "scope": "."}], "errors": []}


def test_preview_unknown_kind(factory, logger):
    with pytest.raises(InvalidKindError):
        preview_template(factory, PreviewParams(alerts(), "x", "t", kind="loki"), logger)
