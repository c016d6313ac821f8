"""
配置加载模块（只负责读配置，不初始化日志；日志由调用方在启动时显式初始化）
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..templates.definitions import Kind, TemplateDefinition
from ..templates.factory import Limits
from .models import ReceiverConfig


@dataclass
class TemplateSettings:
    """模板相关配置（templates 节点）"""
    org_id: str = "grafana"
    external_url: str = ""
    tenant_id: str = ""
    limits: Limits = field(default_factory=Limits)
    definitions: List[TemplateDefinition] = field(default_factory=list)


def _config_path() -> Path:
    """解析 config.yaml 路径：优先环境变量 CONFIG_FILE，否则为项目根目录下的 config.yaml"""
    env_path = os.environ.get("CONFIG_FILE")
    if env_path and os.path.isfile(env_path):
        return Path(env_path)
    root = Path(__file__).resolve().parent.parent.parent
    return root / "config.yaml"


def _normalize_proxy_url(url: str) -> str:
    """
    将 socks5:// 转为 socks5h://，使 DNS 在代理端解析
    """
    if url and url.startswith("socks5://") and not url.startswith("socks5h://"):
        return "socks5h://" + url[len("socks5://"):]
    return url


def _normalize_proxy(proxy: Any) -> Optional[Dict[str, str]]:
    if isinstance(proxy, str):
        if proxy == "none":
            return None
        return {"http": _normalize_proxy_url(proxy), "https": _normalize_proxy_url(proxy)}
    if isinstance(proxy, dict):
        return {
            scheme: _normalize_proxy_url(str(url)) if isinstance(url, str) else url
            for scheme, url in proxy.items()
        }
    return None


def _validate_logging_config(raw: Dict) -> None:
    """
    校验 logging 配置必须存在且字段完整，不在代码里兜底默认值。
    """
    logging_cfg = raw.get("logging")
    if not isinstance(logging_cfg, dict):
        raise ValueError("config.yaml 中必须配置 logging 节点")

    required_fields = ["log_dir", "log_file", "level", "max_bytes", "backup_count"]
    missing = [f for f in required_fields if f not in logging_cfg]
    if missing:
        raise ValueError(f"config.yaml 中 logging 缺少必要字段: {', '.join(missing)}")


def load_template_settings(raw: Dict, base_dir: Optional[Path] = None) -> TemplateSettings:
    """
    解析 templates 节点

    每个 definition 需要 name、kind，以及 template（内联内容）或 file（相对配置文件目录的路径）之一。
    kind 非法时抛出 InvalidKindError。
    """
    cfg = raw.get("templates") or {}
    if not isinstance(cfg, dict):
        raise ValueError("config.yaml 中 templates 节点必须是字典")

    limits_cfg = cfg.get("limits") or {}
    limits = Limits(max_template_output_size=int(limits_cfg.get("max_template_output_size", Limits().max_template_output_size)))
    limits.validate()

    definitions = []
    for idx, item in enumerate(cfg.get("definitions") or []):
        if not isinstance(item, dict) or not item.get("name"):
            raise ValueError(f"templates.definitions[{idx}] 必须包含 name")
        if "template" in item:
            content = str(item["template"])
        elif "file" in item:
            file_path = Path(item["file"])
            if not file_path.is_absolute() and base_dir is not None:
                file_path = base_dir / file_path
            content = file_path.read_text(encoding="utf-8")
        else:
            raise ValueError(f"templates.definitions[{idx}] 必须配置 template 或 file")
        definitions.append(
            TemplateDefinition(
                name=str(item["name"]),
                kind=Kind.parse(item.get("kind", Kind.GRAFANA)),
                template=content,
            )
        )

    return TemplateSettings(
        org_id=str(cfg.get("org_id", "grafana")),
        external_url=str(cfg.get("external_url", "")),
        tenant_id=str(cfg.get("tenant_id", "")),
        limits=limits,
        definitions=definitions,
    )


def load_receivers(raw: Dict) -> Dict[str, ReceiverConfig]:
    """
    解析 receivers 节点，代理配置优先使用接收器级别，否则使用全局 proxy
    """
    receivers_cfg = raw.get("receivers")
    if not isinstance(receivers_cfg, dict):
        raise ValueError("config.yaml 中必须配置 receivers 节点")

    global_proxy = raw.get("proxy", None)
    global_proxy_enabled = raw.get("proxy_enabled", True)

    receivers = {}
    for name, item in receivers_cfg.items():
        if not isinstance(item, dict) or not item.get("type"):
            raise ValueError(f"接收器 {name} 必须配置 type")
        proxy_enabled = item.get("proxy_enabled", global_proxy_enabled)
        proxy = _normalize_proxy(item.get("proxy", global_proxy)) if proxy_enabled else None
        settings = {
            k: v for k, v in item.items()
            if k not in ("type", "uid", "enabled", "disable_resolve_message", "proxy", "proxy_enabled")
        }
        receivers[name] = ReceiverConfig(
            name=name,
            type=str(item["type"]),
            uid=str(item.get("uid", "")),
            enabled=item.get("enabled", True),
            disable_resolve_message=item.get("disable_resolve_message", False),
            settings=settings,
            proxy=proxy,
        )
    return receivers


def load_config(path: Optional[Path] = None) -> Tuple[Dict, TemplateSettings, Dict[str, ReceiverConfig]]:
    """
    加载配置文件

    Returns:
        Tuple[Dict, TemplateSettings, Dict[str, ReceiverConfig]]: (配置字典, 模板配置, 接收器字典)
    """
    path = Path(path) if path else _config_path()
    if not path.is_file():
        raise FileNotFoundError(f"配置文件不存在: {path}，可设置环境变量 CONFIG_FILE 指定路径")
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if raw is None:
        raw = {}
    _validate_logging_config(raw)

    templates = load_template_settings(raw, base_dir=path.parent)
    receivers = load_receivers(raw)
    return raw, templates, receivers
