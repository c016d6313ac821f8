"""
命令行入口

    alert-notifier send payload.json        解析 webhook payload 并发送到已配置的接收器
    alert-notifier preview tmpl.txt --name my_template --alerts alerts.json
                                            试渲染候选模板
"""
import argparse
import json
import sys
from typing import List, Optional

from .adapters.alert_normalizer import normalize
from .core.config import load_config
from .core.logging_config import get_logger, setup_logging
from .services.notification_service import NotificationService
from .templates.definitions import Kind
from .templates.factory import new_factory
from .templates.preview import PreviewParams, preview_template


def _read_json(path: str):
    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="alert-notifier")
    parser.add_argument("--config", help="配置文件路径，默认读取 CONFIG_FILE 或项目根目录下的 config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="发送 webhook payload 中的告警")
    send.add_argument("payload", help="payload JSON 文件，- 表示标准输入")

    preview = sub.add_parser("preview", help="试渲染候选模板")
    preview.add_argument("template", help="模板文件")
    preview.add_argument("--name", required=True, help="模板名称")
    preview.add_argument("--alerts", required=True, help="告警 JSON 文件（payload 或告警列表）")
    preview.add_argument("--kind", default=str(Kind.GRAFANA), help="Grafana 或 Mimir")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    raw, settings, receivers = load_config(args.config)
    setup_logging(**raw["logging"])
    logger = get_logger()
    logger.info(f"配置加载完成，共 {len(receivers)} 个接收器，{len(settings.definitions)} 个模板定义")

    factory = new_factory(
        settings.definitions,
        logger,
        settings.external_url,
        tenant_id=settings.tenant_id,
        limits=settings.limits,
        org_id=settings.org_id,
    )

    if args.command == "send":
        service = NotificationService(raw, receivers, factory)
        result = service.process_webhook(_read_json(args.payload))
        print(json.dumps(result, ensure_ascii=False, indent=2))
        return 0 if result.get("ok") else 1

    with open(args.template, "r", encoding="utf-8") as f:
        template = f.read()
    alerts, _ = normalize(_read_json(args.alerts))
    params = PreviewParams(alerts=alerts, template=template, name=args.name, kind=Kind.parse(args.kind))
    results = preview_template(factory, params, logger)
    print(json.dumps(results.to_dict(), ensure_ascii=False, indent=2))
    return 0 if not results.errors else 1
