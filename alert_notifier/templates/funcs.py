"""
模板函数库

通用函数集（sprig 子集）+ Alertmanager 默认函数，同名时以 Alertmanager 为准；
Grafana kind 额外提供 coll / data / time 命名空间，Mimir kind 额外提供 tenantID 等函数。
每次调用 build_function_map 都返回新的字典，不存在进程级可变状态。
"""
import base64
import hashlib
import json
import math
import re
import zlib
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote_plus, unquote_plus, urlsplit
from zoneinfo import ZoneInfo

import yaml
from markupsafe import Markup

from ..core.utils import format_time
from .definitions import Kind

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_ESCAPE_RE = re.compile(r"%(?![0-9a-fA-F]{2})(.{0,2})", re.S)
_GO_REPL_RE = re.compile(r"\$(?:\{(\w+)\}|(\w+)|(\$))")


# ---------- 辅助 ----------

def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return str(value)


def _to_float(value: Any) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, str):
        return float(value.strip())
    return float(value)


def _to_time(value: Any) -> datetime:
    if value is None:
        return ZERO_TIME
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    raise TypeError(f"期望时间类型，实际为 {type(value).__name__}")


def _is_empty(value: Any) -> bool:
    return value is None or not value


def query_escape(*args) -> str:
    """查询参数编码：空格转为 +，/ 等保留字符一律转义"""
    return quote_plus("".join(_to_str(a) for a in args), safe="")


def query_unescape(text: str) -> str:
    """严格的查询参数解码，遇到非法 % 转义时抛出 ValueError"""
    m = _ESCAPE_RE.search(text)
    if m:
        raise ValueError(f'invalid URL escape "%{m.group(1)}"')
    return unquote_plus(text)


def _go_json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_time(value)
    if isinstance(value, timedelta):
        return int(value.total_seconds() * 1e9)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if hasattr(value, "__dataclass_fields__"):
        return {k: getattr(value, k) for k in value.__dataclass_fields__}
    raise TypeError(f"无法序列化为 JSON: {type(value).__name__}")


def go_json_dumps(value: Any, indent: Optional[str] = None, sort_keys: bool = True) -> str:
    """
    按 Go encoding/json 的风格输出 JSON

    紧凑格式；<、>、& 转义为 \\u003c、\\u003e、\\u0026
    """
    separators = (",", ": ") if indent is not None else (",", ":")
    text = json.dumps(
        value,
        ensure_ascii=False,
        separators=separators,
        indent=indent,
        sort_keys=sort_keys,
        default=_go_json_default,
    )
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


# ---------- Go 时间格式 ----------

def _offset(t: datetime, colon: bool, z: bool, minutes: bool = True) -> str:
    off = t.utcoffset() or timedelta(0)
    if z and off == timedelta(0):
        return "Z"
    total = int(off.total_seconds() // 60)
    sign = "-" if total < 0 else "+"
    h, m = divmod(abs(total), 60)
    if not minutes:
        return f"{sign}{h:02d}"
    return f"{sign}{h:02d}:{m:02d}" if colon else f"{sign}{h:02d}{m:02d}"


def _hour12(t: datetime) -> int:
    h = t.hour % 12
    return 12 if h == 0 else h


_GO_LAYOUT_TOKENS = [
    ("January", lambda t: t.strftime("%B")),
    ("Monday", lambda t: t.strftime("%A")),
    ("2006", lambda t: f"{t.year:04d}"),
    ("Z07:00", lambda t: _offset(t, True, True)),
    ("Z0700", lambda t: _offset(t, False, True)),
    ("-07:00", lambda t: _offset(t, True, False)),
    ("-0700", lambda t: _offset(t, False, False)),
    ("-07", lambda t: _offset(t, False, False, minutes=False)),
    ("Jan", lambda t: t.strftime("%b")),
    ("Mon", lambda t: t.strftime("%a")),
    ("MST", lambda t: t.tzname() or _offset(t, False, False)),
    (".000000000", lambda t: f".{t.microsecond:06d}000"),
    (".000000", lambda t: f".{t.microsecond:06d}"),
    (".000", lambda t: f".{t.microsecond // 1000:03d}"),
    (".999999999", lambda t: f".{t.microsecond:06d}".rstrip("0").rstrip(".")),
    (".999999", lambda t: f".{t.microsecond:06d}".rstrip("0").rstrip(".")),
    (".999", lambda t: f".{t.microsecond // 1000:03d}".rstrip("0").rstrip(".")),
    ("002", lambda t: f"{t.timetuple().tm_yday:03d}"),
    ("01", lambda t: f"{t.month:02d}"),
    ("02", lambda t: f"{t.day:02d}"),
    ("_2", lambda t: f"{t.day:2d}"),
    ("06", lambda t: f"{t.year % 100:02d}"),
    ("15", lambda t: f"{t.hour:02d}"),
    ("03", lambda t: f"{_hour12(t):02d}"),
    ("04", lambda t: f"{t.minute:02d}"),
    ("05", lambda t: f"{t.second:02d}"),
    ("PM", lambda t: "PM" if t.hour >= 12 else "AM"),
    ("pm", lambda t: "pm" if t.hour >= 12 else "am"),
    ("1", lambda t: str(t.month)),
    ("2", lambda t: str(t.day)),
    ("3", lambda t: str(_hour12(t))),
    ("4", lambda t: str(t.minute)),
    ("5", lambda t: str(t.second)),
]


def go_time_format(t: datetime, layout: str) -> str:
    """按 Go 参考时间布局（Mon Jan 2 15:04:05 MST 2006）格式化时间"""
    out = []
    i = 0
    while i < len(layout):
        for token, fmt in _GO_LAYOUT_TOKENS:
            if layout.startswith(token, i):
                out.append(fmt(t))
                i += len(token)
                break
        else:
            out.append(layout[i])
            i += 1
    return "".join(out)


def go_duration(seconds: float) -> str:
    """按 Go time.Duration.String 的格式输出时长，例如 1h2m3.5s"""
    if seconds == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    if seconds < 1:
        for unit, scale in (("ms", 1e3), ("µs", 1e6), ("ns", 1e9)):
            if seconds * scale >= 1 or unit == "ns":
                return f"{sign}{_to_str(round(seconds * scale, 6))}{unit}"
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    out = sign
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    return out + f"{_to_str(round(secs, 9))}s"


# ---------- Alertmanager 默认函数 ----------

def _join(sep: str, items) -> str:
    return sep.join(_to_str(i) for i in items)


def _match(pattern: str, text: str) -> bool:
    return re.search(pattern, text) is not None


def _go_replacement(repl: str) -> str:
    """将 Go 正则替换模板（$1、${name}）转换为 Python 写法"""
    def sub(m):
        if m.group(3):
            return "$"
        return "\\g<" + (m.group(1) or m.group(2)) + ">"
    return _GO_REPL_RE.sub(sub, repl.replace("\\", "\\\\"))


def _re_replace_all(pattern: str, repl: str, text: str) -> str:
    return re.sub(pattern, _go_replacement(repl), text)


def _date(layout: str, t) -> str:
    return go_time_format(_to_time(t), layout)


def _tz(name: str, t) -> datetime:
    return _to_time(t).astimezone(ZoneInfo(name))


def _since(t) -> timedelta:
    return datetime.now(timezone.utc) - _to_time(t)


def humanize_duration(value) -> str:
    """秒数转为可读时长（与 Prometheus humanizeDuration 一致）"""
    v = _to_float(value)
    if math.isnan(v):
        return "NaN"
    if math.isinf(v):
        return "+Inf" if v > 0 else "-Inf"
    if v == 0:
        return "%.4gs" % v
    if abs(v) >= 1:
        sign = ""
        if v < 0:
            sign = "-"
            v = -v
        duration = int(v)
        seconds = duration % 60
        minutes = (duration // 60) % 60
        hours = (duration // 3600) % 24
        days = duration // 86400
        if days:
            return f"{sign}{days}d {hours}h {minutes}m {seconds}s"
        if hours:
            return f"{sign}{hours}h {minutes}m {seconds}s"
        if minutes:
            return f"{sign}{minutes}m {seconds}s"
        return "%s%.4gs" % (sign, v)
    prefix = ""
    for p in ("m", "u", "n", "p", "f", "a", "z", "y"):
        if abs(v) >= 1:
            break
        prefix = p
        v *= 1000
    return "%.4g%ss" % (v, prefix)


def alertmanager_funcs() -> Dict[str, Callable]:
    return {
        "toUpper": lambda s: _to_str(s).upper(),
        "toLower": lambda s: _to_str(s).lower(),
        "title": lambda s: _to_str(s).title(),
        "trimSpace": lambda s: _to_str(s).strip(),
        "join": _join,
        "match": _match,
        "safeHtml": lambda s: Markup(_to_str(s)),
        "safeUrl": _to_str,
        "urlquery": query_escape,
        "urlUnescape": query_unescape,
        "reReplaceAll": _re_replace_all,
        "stringSlice": lambda *s: list(s),
        "date": _date,
        "tz": _tz,
        "since": _since,
        "humanizeDuration": humanize_duration,
    }


# ---------- 通用函数集（sprig 子集，不含 env / expandenv） ----------

def _default(default, *given):
    if not given or _is_empty(given[0]):
        return default
    return given[0]


def _coalesce(*values):
    for v in values:
        if not _is_empty(v):
            return v
    return None


def _ternary(true_value, false_value, condition):
    return true_value if condition else false_value


def _dict(*pairs, **kwargs) -> Dict[str, Any]:
    d = {}
    for i in range(0, len(pairs), 2):
        key = _to_str(pairs[i])
        d[key] = pairs[i + 1] if i + 1 < len(pairs) else ""
    d.update(kwargs)
    return d


def _uniq(items) -> list:
    out = []
    for i in items:
        if i not in out:
            out.append(i)
    return out


def _trunc(n: int, s: str) -> str:
    s = _to_str(s)
    if n < 0:
        return s[n:] if len(s) > -n else s
    return s[:n]


def _abbrev(width: int, s: str) -> str:
    s = _to_str(s)
    if width < 4 or len(s) <= width:
        return s
    return s[: width - 3] + "..."


def _substr(start: int, end: int, s: str) -> str:
    s = _to_str(s)
    if start < 0:
        return s[:end]
    if end < 0 or end > len(s):
        return s[start:]
    return s[start:end]


def _indent(spaces: int, s: str) -> str:
    pad = " " * spaces
    return pad + _to_str(s).replace("\n", "\n" + pad)


def _words(s: str) -> List[str]:
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", _to_str(s))
    return [w for w in re.split(r"[\s_\-]+", s) if w]


def _split(sep: str, s: str) -> Dict[str, str]:
    return {f"_{i}": part for i, part in enumerate(_to_str(s).split(sep))}


def _regex_find_all(pattern: str, s: str, n: int) -> List[str]:
    found = [m.group(0) for m in re.finditer(pattern, s)]
    return found if n < 0 else found[:n]


def _regex_find(pattern: str, s: str) -> str:
    m = re.search(pattern, s)
    return m.group(0) if m else ""


def _regex_split(pattern: str, s: str, n: int) -> List[str]:
    return re.split(pattern, s) if n < 0 else re.split(pattern, s, maxsplit=max(n - 1, 0))


def _b64dec(s: str) -> str:
    return base64.b64decode(_to_str(s)).decode("utf-8")


def _b32dec(s: str) -> str:
    return base64.b32decode(_to_str(s)).decode("utf-8")


def _hash(name: str) -> Callable[[str], str]:
    return lambda s: hashlib.new(name, _to_str(s).encode("utf-8")).hexdigest()


def _round(value, precision: int = 0, round_on: float = 0.5):
    pow10 = 10 ** precision
    digit = pow10 * _to_float(value)
    _, frac = math.modf(digit)
    if frac >= round_on:
        return math.ceil(digit) / pow10
    return math.floor(digit) / pow10


def _date_in_zone(layout: str, t, zone: str) -> str:
    return go_time_format(_tz(zone, t), layout)


def sprig_funcs() -> Dict[str, Callable]:
    return {
        # 默认值
        "default": _default,
        "empty": _is_empty,
        "coalesce": _coalesce,
        "ternary": _ternary,
        # 字符串
        "trim": lambda s: _to_str(s).strip(),
        "trimAll": lambda cut, s: _to_str(s).strip(cut),
        "trimPrefix": lambda p, s: _to_str(s)[len(p):] if _to_str(s).startswith(p) else _to_str(s),
        "trimSuffix": lambda p, s: _to_str(s)[: -len(p)] if p and _to_str(s).endswith(p) else _to_str(s),
        "upper": lambda s: _to_str(s).upper(),
        "lower": lambda s: _to_str(s).lower(),
        "title": lambda s: _to_str(s).title(),
        "untitle": lambda s: " ".join(w[:1].lower() + w[1:] for w in _to_str(s).split(" ")),
        "repeat": lambda n, s: _to_str(s) * int(n),
        "substr": _substr,
        "nospace": lambda s: re.sub(r"\s+", "", _to_str(s)),
        "trunc": _trunc,
        "abbrev": _abbrev,
        "initials": lambda s: "".join(w[0] for w in _to_str(s).split()),
        "contains": lambda sub, s: sub in _to_str(s),
        "hasPrefix": lambda p, s: _to_str(s).startswith(p),
        "hasSuffix": lambda p, s: _to_str(s).endswith(p),
        "quote": lambda *s: " ".join(json.dumps(_to_str(i), ensure_ascii=False) for i in s if i is not None),
        "squote": lambda *s: " ".join(f"'{_to_str(i)}'" for i in s if i is not None),
        "cat": lambda *s: " ".join(_to_str(i) for i in s if i is not None),
        "indent": _indent,
        "nindent": lambda n, s: "\n" + _indent(n, s),
        "replace": lambda old, new, s: _to_str(s).replace(old, new),
        "plural": lambda one, many, n: one if n == 1 else many,
        "snakecase": lambda s: "_".join(w.lower() for w in _words(s)),
        "camelcase": lambda s: "".join(w[:1].upper() + w[1:] for w in _words(s)),
        "kebabcase": lambda s: "-".join(w.lower() for w in _words(s)),
        "swapcase": lambda s: _to_str(s).swapcase(),
        "split": _split,
        "splitList": lambda sep, s: _to_str(s).split(sep),
        "toString": _to_str,
        "toStrings": lambda items: [_to_str(i) for i in items],
        # 正则
        "regexMatch": _match,
        "regexFind": _regex_find,
        "regexFindAll": _regex_find_all,
        "regexReplaceAll": lambda pattern, s, repl: _re_replace_all(pattern, repl, s),
        "regexReplaceAllLiteral": lambda pattern, s, repl: re.sub(pattern, lambda _: repl, s),
        "regexSplit": _regex_split,
        "regexQuoteMeta": re.escape,
        # 列表
        "list": lambda *items: list(items),
        "first": lambda items: items[0] if items else None,
        "last": lambda items: items[-1] if items else None,
        "rest": lambda items: list(items[1:]),
        "initial": lambda items: list(items[:-1]),
        "append": lambda items, v: list(items) + [v],
        "prepend": lambda items, v: [v] + list(items),
        "concat": lambda *lists: [i for items in lists for i in items],
        "uniq": _uniq,
        "without": lambda items, *drop: [i for i in items if i not in drop],
        "has": lambda needle, items: needle in items,
        "compact": lambda items: [i for i in items if not _is_empty(i)],
        "reverse": lambda items: list(items)[::-1],
        "sortAlpha": lambda items: sorted(_to_str(i) for i in items),
        "until": lambda n: list(range(int(n))),
        "untilStep": lambda start, stop, step: list(range(int(start), int(stop), int(step))),
        # 字典
        "dict": _dict,
        "get": lambda d, key: d.get(key, ""),
        "hasKey": lambda d, key: key in d,
        "keys": lambda *dicts: [k for d in dicts for k in d],
        "pluck": lambda key, *dicts: [d[key] for d in dicts if key in d],
        "pick": lambda d, *keys: {k: v for k, v in d.items() if k in keys},
        "omit": lambda d, *keys: {k: v for k, v in d.items() if k not in keys},
        # 编码
        "b64enc": lambda s: base64.b64encode(_to_str(s).encode("utf-8")).decode("ascii"),
        "b64dec": _b64dec,
        "b32enc": lambda s: base64.b32encode(_to_str(s).encode("utf-8")).decode("ascii"),
        "b32dec": _b32dec,
        "sha1sum": _hash("sha1"),
        "sha256sum": _hash("sha256"),
        "adler32sum": lambda s: str(zlib.adler32(_to_str(s).encode("utf-8"))),
        "toJson": lambda v: go_json_dumps(v),
        "toPrettyJson": lambda v: go_json_dumps(v, indent="  "),
        "fromJson": lambda s: json.loads(_to_str(s)),
        # 数学
        "add": lambda *n: sum(int(i) for i in n),
        "add1": lambda n: int(n) + 1,
        "sub": lambda a, b: int(a) - int(b),
        "mul": lambda *n: math.prod(int(i) for i in n),
        "div": lambda a, b: int(int(a) / int(b)),
        "mod": lambda a, b: int(math.fmod(int(a), int(b))),
        "max": lambda *n: max(int(i) for i in n),
        "min": lambda *n: min(int(i) for i in n),
        "floor": lambda v: float(math.floor(_to_float(v))),
        "ceil": lambda v: float(math.ceil(_to_float(v))),
        "round": _round,
        "int": lambda v: int(_to_float(v)),
        "int64": lambda v: int(_to_float(v)),
        "float64": _to_float,
        "atoi": lambda s: int(_to_str(s)),
        # 时间
        "now": lambda: datetime.now(timezone.utc),
        "date": _date,
        "dateInZone": _date_in_zone,
        "unixEpoch": lambda t: str(int(_to_time(t).timestamp())),
        "duration": lambda sec: go_duration(_to_float(sec)),
        "ago": lambda t: go_duration(round(_since(t).total_seconds())),
    }


# ---------- Grafana kind：gomplate 命名空间 ----------

class CollFuncs:
    """coll 命名空间"""

    @staticmethod
    def dict(*pairs) -> Dict[str, Any]:
        return _dict(*pairs)

    @staticmethod
    def slice(*args) -> list:
        return list(args)

    @staticmethod
    def append(value, items) -> list:
        if not isinstance(items, (list, tuple)):
            raise TypeError(f"expected an array or slice, but got {type(items).__name__}")
        return list(items) + [value]


class DataFuncs:
    """data 命名空间，JSON 解析走 YAML（JSON 是 YAML 的子集）"""

    @staticmethod
    def json(value) -> Any:
        text = "nil" if value is None else _to_str(value)
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"unable to unmarshal object {text}: {e}") from e

    @staticmethod
    def to_json(value) -> str:
        return go_json_dumps(value)

    @staticmethod
    def to_json_pretty(indent: str, value) -> str:
        return go_json_dumps(value, indent=indent)


class TimeFuncs:
    """time 命名空间"""

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)


class TmplFuncs:
    """
    tmpl 命名空间：在模板内执行其他命名模板或内联模板

    exec / inline 的 context 若为字典则作为变量传入，否则以 value 变量传入。
    """

    def __init__(self, render_named: Callable[[str, Any], str], render_inline: Callable[[str, str, Any], str]):
        self._render_named = render_named
        self._render_inline = render_inline

    def exec(self, name: str, context=None) -> str:
        return self._render_named(name, context)

    def inline(self, *args) -> str:
        if len(args) != 2:
            raise TypeError(f"wrong number of args for tpl: want 2 - got {len(args)}")
        first, second = args
        if not isinstance(first, str):
            raise TypeError(f"wrong input: first arg must be string, got {type(first).__name__}")
        if isinstance(second, str):
            return self._render_inline(first, second, None)
        return self._render_inline("<inline>", first, second)


def grafana_funcs() -> Dict[str, Any]:
    return {
        "coll": CollFuncs(),
        "data": DataFuncs(),
        "time": TimeFuncs(),
    }


# ---------- Mimir kind ----------

def query_from_generator_url(generator_url: str) -> str:
    """
    从 generatorURL 的 g0.expr 参数中取出查询表达式

    参数缺失或解码失败时抛出异常，不返回空字符串。
    """
    try:
        raw_query = urlsplit(generator_url).query
    except ValueError as e:
        raise ValueError(f"failed to parse generator URL: {e}") from e

    query = ""
    for part in re.split("[&;]", raw_query):
        key, _, value = part.partition("=")
        try:
            if query_unescape(key) == "g0.expr":
                query = query_unescape(value)
                break
        except ValueError:
            continue
    if not query:
        raise ValueError("query not found in the generator URL")
    try:
        return query_unescape(query)
    except ValueError as e:
        raise ValueError(f"failed to URL decode the query: {e}") from e


def grafana_explore_url(grafana_url, datasource, from_, to, expr) -> str:
    """生成 Grafana Explore 链接，参数必须全部为字符串"""
    for arg in (grafana_url, datasource, from_, to, expr):
        if not isinstance(arg, str):
            raise TypeError(f"grafanaExploreURL 参数必须为字符串，实际为 {type(arg).__name__}")
    explore = {
        "range": {"from": from_, "to": to},
        "queries": [
            {
                "datasource": {"type": "prometheus", "uid": datasource},
                "expr": expr,
                "instant": False,
                "range": True,
                "refId": "A",
            }
        ],
    }
    return grafana_url + "/explore?left=" + quote_plus(go_json_dumps(explore, sort_keys=False), safe="")


def mimir_funcs(tenant_id: str) -> Dict[str, Callable]:
    return {
        "tenantID": lambda: tenant_id,
        "queryFromGeneratorURL": query_from_generator_url,
        "grafanaExploreURL": grafana_explore_url,
    }


# ---------- 过滤器 ----------

def format_number(value) -> str:
    """数值输出：整数值的浮点数不带 .0"""
    return _to_str(value)


def url_to_link(text: str) -> str:
    """
    将文本中的 URL 转换为 HTML 链接标签
    用于 Telegram HTML 格式
    """
    if not text or not isinstance(text, str):
        return text

    url_pattern = r"(https?://[^\s\)]+)"

    def replace_url(match):
        url = match.group(1)
        # 移除 URL 末尾可能存在的标点符号
        url_clean = url.rstrip(".,;:!?)")
        return f"<a href=\"{url_clean}\">{url_clean}</a>" + url[len(url_clean):]

    return re.sub(url_pattern, replace_url, text)


def piped(fn: Callable) -> Callable:
    """
    函数转过滤器：管道左侧的值作为最后一个参数传入

    与 Go 模板管道一致，{{ x | join(" ") }} 等价于 join(" ", x)。
    """
    def _filter(value, *args):
        return fn(*args, value)
    _filter.__name__ = getattr(fn, "__name__", "filter")
    return _filter


def build_function_map(kind: Kind, tenant_id: str = "") -> Dict[str, Any]:
    """
    构建指定 kind 的函数表（每次返回新字典）

    合并顺序：sprig 子集 -> Alertmanager 默认函数（同名覆盖） -> kind 专属函数
    """
    funcs: Dict[str, Any] = {}
    funcs.update(sprig_funcs())
    funcs.update(alertmanager_funcs())
    if kind == Kind.GRAFANA:
        funcs.update(grafana_funcs())
    elif kind == Kind.MIMIR:
        funcs.update(mimir_funcs(tenant_id))
    return funcs
