"""
内置默认模板

Grafana kind 使用 Grafana 原生默认模板，Mimir kind 使用 Prometheus Alertmanager 默认模板。
遍历告警列表的子模板从 alert_list 变量取列表，调用方通过
{% with alert_list = alerts.firing() %}{% include "..." %}{% endwith %} 传入。
"""
from typing import List

from .definitions import Kind, TemplateDefinition

DEFAULT_TEMPLATE_NAME = "__default__"

DEFAULT_MESSAGE_TITLE_EMBED = '{% include "default.title" %}'
DEFAULT_MESSAGE_EMBED = '{% include "default.message" %}'

DEFAULT_TEMPLATE_STRING = """
{% define "__subject" %}[{{ status | toUpper }}{% if status == "firing" %}:{{ alerts.firing() | length }}{% if alerts.resolved() | length > 0 %}, RESOLVED:{{ alerts.resolved() | length }}{% endif %}{% endif %}] {{ group_labels.sorted_values() | join(" ") }} {% if common_labels | length > group_labels | length %}({{ common_labels.remove(group_labels.names()).sorted_values() | join(" ") }}){% endif %}{% enddefine %}

{% define "__text_values_list" %}{% if alert.values %}{% for ref_id, value in alert.values | dictsort %}{% if not loop.first %}, {% endif %}{{ ref_id }}={{ value | format_number }}{% endfor %}{% else %}[no value]{% endif %}{% enddefine %}

{% define "__text_alert_list" %}{% for alert in alert_list %}
Value: {% include "__text_values_list" %}
Labels:
{% for pair in alert.labels.sorted_pairs() %} - {{ pair.name }} = {{ pair.value }}
{% endfor %}Annotations:
{% for pair in alert.annotations.sorted_pairs() %} - {{ pair.name }} = {{ pair.value }}
{% endfor %}{% if alert.generator_url %}Source: {{ alert.generator_url }}
{% endif %}{% if alert.silence_url %}Silence: {{ alert.silence_url }}
{% endif %}{% if alert.dashboard_url %}Dashboard: {{ alert.dashboard_url }}
{% endif %}{% if alert.panel_url %}Panel: {{ alert.panel_url }}
{% endif %}{% endfor %}{% enddefine %}

{% define "default.title" %}{% include "__subject" %}{% enddefine %}

{% define "default.message" %}{% if alerts.firing() | length > 0 %}**Firing**
{% with alert_list = alerts.firing() %}{% include "__text_alert_list" %}{% endwith %}{% if alerts.resolved() | length > 0 %}

{% endif %}{% endif %}{% if alerts.resolved() | length > 0 %}**Resolved**
{% with alert_list = alerts.resolved() %}{% include "__text_alert_list" %}{% endwith %}{% endif %}{% enddefine %}

{% define "__teams_text_alert_list" %}{% for alert in alert_list %}
Value: {% include "__text_values_list" %}
Labels:
{% for pair in alert.labels.sorted_pairs() %} - {{ pair.name }} = {{ pair.value }}
{% endfor %}
Annotations:
{% for pair in alert.annotations.sorted_pairs() %} - {{ pair.name }} = {{ pair.value }}
{% endfor %}
{% if alert.generator_url %}Source: [{{ alert.generator_url }}]({{ alert.generator_url }})

{% endif %}{% if alert.silence_url %}Silence: [{{ alert.silence_url }}]({{ alert.silence_url }})

{% endif %}{% if alert.dashboard_url %}Dashboard: [{{ alert.dashboard_url }}]({{ alert.dashboard_url }})

{% endif %}{% if alert.panel_url %}Panel: [{{ alert.panel_url }}]({{ alert.panel_url }})

{% endif %}
{% endfor %}{% enddefine %}

{% define "teams.default.message" %}{% if alerts.firing() | length > 0 %}**Firing**
{% with alert_list = alerts.firing() %}{% include "__teams_text_alert_list" %}{% endwith %}{% if alerts.resolved() | length > 0 %}

{% endif %}{% endif %}{% if alerts.resolved() | length > 0 %}**Resolved**
{% with alert_list = alerts.resolved() %}{% include "__teams_text_alert_list" %}{% endwith %}{% endif %}{% enddefine %}
"""

# Prometheus Alertmanager 默认模板（Mimir kind）
ALERTMANAGER_TEMPLATE_STRING = """
{% define "__alertmanager" %}Alertmanager{% enddefine %}
{% define "__alertmanagerURL" %}{{ external_url }}/#/alerts?receiver={{ receiver | urlquery }}{% enddefine %}

{% define "__subject" %}[{{ status | toUpper }}{% if status == "firing" %}:{{ alerts.firing() | length }}{% endif %}] {{ group_labels.sorted_values() | join(" ") }} {% if common_labels | length > group_labels | length %}({{ common_labels.remove(group_labels.names()).sorted_values() | join(" ") }}){% endif %}{% enddefine %}
{% define "__description" %}{% enddefine %}

{% define "__text_alert_list" %}{% for alert in alert_list %}Labels:
{% for pair in alert.labels.sorted_pairs() %} - {{ pair.name }} = {{ pair.value }}
{% endfor %}Annotations:
{% for pair in alert.annotations.sorted_pairs() %} - {{ pair.name }} = {{ pair.value }}
{% endfor %}Source: {{ alert.generator_url }}
{% endfor %}{% enddefine %}

{% define "__text_alert_list_markdown" %}{% for alert in alert_list %}
Labels:
{% for pair in alert.labels.sorted_pairs() %}  - {{ pair.name }} = {{ pair.value }}
{% endfor %}
Annotations:
{% for pair in alert.annotations.sorted_pairs() %}  - {{ pair.name }} = {{ pair.value }}
{% endfor %}
Source: {{ alert.generator_url }}
{% endfor %}
{% enddefine %}

{% define "__alert_sections" %}
{% if alerts.firing() | length > 0 %}
Alerts Firing:
{% with alert_list = alerts.firing() %}{% include "__text_alert_list" %}{% endwith %}
{% endif %}
{% if alerts.resolved() | length > 0 %}
Alerts Resolved:
{% with alert_list = alerts.resolved() %}{% include "__text_alert_list" %}{% endwith %}
{% endif %}
{% enddefine %}

{% define "slack.default.title" %}{% include "__subject" %}{% enddefine %}
{% define "slack.default.username" %}{% include "__alertmanager" %}{% enddefine %}
{% define "slack.default.fallback" %}{% include "slack.default.title" %} | {% include "slack.default.titlelink" %}{% enddefine %}
{% define "slack.default.callbackid" %}{% enddefine %}
{% define "slack.default.pretext" %}{% enddefine %}
{% define "slack.default.titlelink" %}{% include "__alertmanagerURL" %}{% enddefine %}
{% define "slack.default.iconemoji" %}{% enddefine %}
{% define "slack.default.iconurl" %}{% enddefine %}
{% define "slack.default.text" %}{% enddefine %}
{% define "slack.default.footer" %}{% enddefine %}

{% define "pagerduty.default.description" %}{% include "__subject" %}{% enddefine %}
{% define "pagerduty.default.client" %}{% include "__alertmanager" %}{% enddefine %}
{% define "pagerduty.default.clientURL" %}{% include "__alertmanagerURL" %}{% enddefine %}
{% define "pagerduty.default.instances" %}{% with alert_list = alerts %}{% include "__text_alert_list" %}{% endwith %}{% enddefine %}

{% define "opsgenie.default.message" %}{% include "__subject" %}{% enddefine %}
{% define "opsgenie.default.description" %}{{ common_annotations.sorted_values() | join(" ") }}
{% if alerts.firing() | length > 0 -%}
Alerts Firing:
{% with alert_list = alerts.firing() %}{% include "__text_alert_list" %}{% endwith %}
{%- endif %}
{% if alerts.resolved() | length > 0 -%}
Alerts Resolved:
{% with alert_list = alerts.resolved() %}{% include "__text_alert_list" %}{% endwith %}
{%- endif %}
{%- enddefine %}
{% define "opsgenie.default.source" %}{% include "__alertmanagerURL" %}{% enddefine %}

{% define "pushover.default.title" %}{% include "__subject" %}{% enddefine %}
{% define "pushover.default.message" %}{{ common_annotations.sorted_values() | join(" ") }}{% include "__alert_sections" %}{% enddefine %}
{% define "pushover.default.url" %}{% include "__alertmanagerURL" %}{% enddefine %}

{% define "sns.default.subject" %}{% include "__subject" %}{% enddefine %}
{% define "sns.default.message" %}{{ common_annotations.sorted_values() | join(" ") }}{% include "__alert_sections" %}{% enddefine %}

{% define "telegram.default.message" %}{% include "__alert_sections" %}{% enddefine %}

{% define "discord.default.content" %}{% enddefine %}
{% define "discord.default.title" %}{% include "__subject" %}{% enddefine %}
{% define "discord.default.message" %}{% include "__alert_sections" %}{% enddefine %}

{% define "webex.default.message" %}{{ common_annotations.sorted_values() | join(" ") }}{% include "__alert_sections" %}{% enddefine %}

{% define "msteams.default.summary" %}{% include "__subject" %}{% enddefine %}
{% define "msteams.default.title" %}{% include "__subject" %}{% enddefine %}
{% define "msteams.default.text" %}
{% if alerts.firing() | length > 0 %}
# Alerts Firing:
{% with alert_list = alerts.firing() %}{% include "__text_alert_list_markdown" %}{% endwith %}
{% endif %}
{% if alerts.resolved() | length > 0 %}
# Alerts Resolved:
{% with alert_list = alerts.resolved() %}{% include "__text_alert_list_markdown" %}{% endwith %}
{% endif %}
{% enddefine %}

{% define "jira.default.summary" %}{% include "__subject" %}{% enddefine %}
{% define "jira.default.description" %}{% if alerts.firing() | length > 0 -%}
# Alerts Firing:
{% with alert_list = alerts.firing() %}{% include "__text_alert_list_markdown" %}{% endwith %}
{%- endif %}
{% if alerts.resolved() | length > 0 -%}
# Alerts Resolved:
{% with alert_list = alerts.resolved() %}{% include "__text_alert_list_markdown" %}{% endwith %}
{%- endif %}
{%- enddefine %}
{% define "jira.default.priority" %}{% enddefine %}
"""

# Alertmanager 默认邮件模板（Mimir kind），标签和注解按 HTML 转义输出
ALERTMANAGER_EMAIL_TEMPLATE_STRING = """
{% define "email.default.subject" %}{% include "__subject" %}{% enddefine %}
{% define "__email_alert_list" %}{% for alert in alert_list %}
            <tr>
              <td class="content-block">
                <strong>Labels</strong><br />
                {% for pair in alert.labels.sorted_pairs() %}{{ pair.name | e }} = {{ pair.value | e }}<br />{% endfor %}
                {% if alert.annotations | length > 0 %}<strong>Annotations</strong><br />{% endif %}
                {% for pair in alert.annotations.sorted_pairs() %}{{ pair.name | e }} = {{ pair.value | e }}<br />{% endfor %}
                <a href="{{ alert.generator_url | e }}">Source</a><br />
              </td>
            </tr>
{% endfor %}{% enddefine %}
{% define "email.default.html" %}<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN" "http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">
<html xmlns="http://www.w3.org/1999/xhtml">
<head>
<meta name="viewport" content="width=device-width" />
<meta http-equiv="Content-Type" content="text/html; charset=UTF-8" />
<title>{% filter e %}{% include "__subject" %}{% endfilter %}</title>
<style>
body { font-family: "Helvetica Neue", Helvetica, Arial, sans-serif; font-size: 14px; line-height: 1.6em; background-color: #f6f6f6; margin: 0; }
.container { display: block; max-width: 600px; margin: 0 auto; padding: 20px; }
.main { background-color: #fff; border: 1px solid #e9e9e9; border-radius: 3px; width: 100%; }
.content-block { padding: 0 0 20px; vertical-align: top; }
.alert { font-size: 16px; color: #fff; font-weight: 500; padding: 20px; text-align: center; border-radius: 3px 3px 0 0; }
.alert.alert-warning { background-color: #E6522C; }
.alert.alert-good { background-color: #68B90F; }
.btn-primary { text-decoration: none; color: #fff; background-color: #348eda; border: solid #348eda; border-width: 10px 20px; font-weight: bold; border-radius: 5px; display: inline-block; }
.footer { width: 100%; clear: both; color: #999; padding: 20px; text-align: center; font-size: 12px; }
</style>
</head>
<body itemscope itemtype="http://schema.org/EmailMessage">
<table class="body-wrap">
  <tr>
    <td class="container" width="600">
      <table class="main" width="100%" cellpadding="0" cellspacing="0">
        <tr>
          {% if alerts.firing() | length > 0 %}<td class="alert alert-warning">{% else %}<td class="alert alert-good">{% endif %}
            {{ alerts | length }} alert{% if alerts | length > 1 %}s{% endif %} for {% for pair in group_labels.sorted_pairs() %}
            {{ pair.name | e }}={{ pair.value | e }}
            {% endfor %}
          </td>
        </tr>
        <tr>
          <td class="content-wrap">
            <table width="100%" cellpadding="0" cellspacing="0">
              <tr>
                <td class="content-block">
                  <a href="{% filter e %}{% include "__alertmanagerURL" %}{% endfilter %}" class="btn-primary">View in {% include "__alertmanager" %}</a>
                </td>
              </tr>
              {% if alerts.firing() | length > 0 %}
              <tr>
                <td class="content-block">
                  <strong>[{{ alerts.firing() | length }}] Firing</strong>
                </td>
              </tr>
              {% with alert_list = alerts.firing() %}{% include "__email_alert_list" %}{% endwith %}
              {% endif %}
              {% if alerts.resolved() | length > 0 %}
              <tr>
                <td class="content-block">
                  <strong>[{{ alerts.resolved() | length }}] Resolved</strong>
                </td>
              </tr>
              {% with alert_list = alerts.resolved() %}{% include "__email_alert_list" %}{% endwith %}
              {% endif %}
            </table>
          </td>
        </tr>
      </table>
      <div class="footer">
        <p>Sent by {% include "__alertmanager" %}</p>
      </div>
    </td>
  </tr>
</table>
</body>
</html>
{% enddefine %}
"""


def default_template() -> TemplateDefinition:
    """Grafana 内置默认模板"""
    return TemplateDefinition(name=DEFAULT_TEMPLATE_NAME, kind=Kind.GRAFANA, template=DEFAULT_TEMPLATE_STRING)


def alertmanager_default_template() -> TemplateDefinition:
    """Alertmanager 内置默认模板（Mimir kind）"""
    return TemplateDefinition(
        name=DEFAULT_TEMPLATE_NAME,
        kind=Kind.MIMIR,
        template=ALERTMANAGER_TEMPLATE_STRING + ALERTMANAGER_EMAIL_TEMPLATE_STRING,
    )


def default_templates_per_kind(kind: Kind) -> List[TemplateDefinition]:
    if kind == Kind.GRAFANA:
        return [default_template()]
    if kind == Kind.MIMIR:
        return [alertmanager_default_template()]
    return []
