# =============================================================================
# 模块: apps/crawler/extractor.py
# 功能: 基于规则数据的竞赛信息抽取器（HTML 页面与 JSON 接口）
# 架构角色: 爬虫子系统的解析层。输入抓取到的页面内容和平台的抽取规则，
#   输出零个或多个 RawRecord。平台差异完全由规则数据表达，没有子类继承。
# 设计理念:
#   1. 字段抽取建模为有序的策略列表（FieldStrategy），依次尝试直到得到非空文本
#   2. 每个条目节点独立抽取，单个节点失败只记录日志并跳过，不影响兄弟节点
#   3. 相对链接基于数据源 base_url 解析为绝对链接
#   4. 至少有标题或描述才输出记录；严格平台要求标题和链接同时存在
#   5. 日期统一通过 dates.normalize_date 归一化，无法解析视为缺失而非错误
#   6. JSON 接口使用同一套规则结构：item 为列表所在的点分路径，字段策略按键取值
# =============================================================================
"""Rule-driven extraction of raw contest records from HTML pages and JSON APIs."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from apps.crawler.dates import normalize_date, normalize_prize
from apps.crawler.models import RawRecord

logger = logging.getLogger(__name__)

# 可抽取的字段名
RECORD_FIELDS = ("title", "description", "deadline", "start_date", "end_date", "prize", "status", "link")
_DATE_FIELDS = ("deadline", "start_date", "end_date")
RULE_FORMATS = ("html", "json")

# JSON 条目节点
JsonItem = Mapping[str, Any]
Node = Union[Tag, JsonItem]


# -----------------------------------------------------------------------------
# JSON 取值
# -----------------------------------------------------------------------------
def lookup(data: Any, path: Optional[str]) -> Any:
    """Follow a dotted path such as ``Data.Races`` through nested mappings.

    空路径返回 data 本身；路径中的数字段可以索引列表。
    """
    current = data
    for part in (path or "").split("."):
        if not part:
            continue
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def _epoch_to_iso(value: Any) -> str:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return ""
    # 毫秒时间戳
    if seconds > 1e11:
        seconds /= 1000
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def _json_text(value: Any) -> str:
    if value is None or isinstance(value, Mapping):
        return ""
    if isinstance(value, list):
        # 标签列表：[{"name": "nlp"}, ...] 或 ["nlp", ...]
        names = [v.get("name") if isinstance(v, Mapping) else v for v in value]
        return ", ".join(str(n).strip() for n in names if n not in (None, ""))
    return " ".join(str(value).split())


# -----------------------------------------------------------------------------
# 字段抽取策略
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class FieldStrategy:
    """One way of pulling a string out of an item node.

    kind:
        - ``text``: text content of ``selector`` (or of the node itself)
        - ``attr``: attribute ``attr`` of ``selector`` (or of the node itself)
        - ``regex``: first match of ``pattern`` in the text of ``selector``/node
        - ``key``: value at dotted path ``key`` of a JSON item, optionally
          read as a unix timestamp (``epoch``) and formatted into ``template``
    """

    kind: str
    selector: Optional[str] = None
    attr: Optional[str] = None
    pattern: Optional[str] = None
    key: Optional[str] = None
    template: Optional[str] = None
    epoch: bool = False

    def _target(self, node: Tag) -> Optional[Tag]:
        if not self.selector:
            return node
        return node.select_one(self.selector)

    def _apply_key(self, item: JsonItem) -> str:
        value = lookup(item, self.key)
        if self.epoch and value not in (None, "", 0):
            result = _epoch_to_iso(value)
        else:
            result = _json_text(value)
        if result and self.template:
            result = self.template.format(result)
        return result

    def apply(self, node: Node) -> str:
        if self.kind == "key":
            return self._apply_key(node) if isinstance(node, Mapping) else ""
        if isinstance(node, Mapping):
            raise ValueError(f"Strategy kind {self.kind!r} cannot read a JSON item")
        target = self._target(node)
        if target is None:
            return ""
        if self.kind == "text":
            return " ".join(target.get_text(" ", strip=True).split())
        if self.kind == "attr":
            value = target.get(self.attr or "href")
            if isinstance(value, list):
                value = " ".join(value)
            return (value or "").strip()
        if self.kind == "regex":
            match = re.search(self.pattern or "", target.get_text(" ", strip=True), re.IGNORECASE)
            if not match:
                return ""
            return (match.group(1) if match.groups() else match.group(0)).strip()
        raise ValueError(f"Unknown field strategy kind: {self.kind}")

    @classmethod
    def from_config(cls, spec: Any) -> "FieldStrategy":
        """Build a strategy from YAML data.

        - ``"h3"`` -> text of ``h3``
        - ``{"selector": "a", "attr": "href"}`` -> attribute
        - ``{"regex": "(\\d+) days left", "selector": ".meta"}`` -> regex
        - ``{"key": "ref", "template": "https://x/{}"}`` -> JSON value
        """
        if isinstance(spec, FieldStrategy):
            return spec
        if isinstance(spec, str):
            return text(spec)
        if isinstance(spec, Mapping):
            if "key" in spec:
                return key(spec["key"], spec.get("template"), bool(spec.get("epoch", False)))
            if "regex" in spec:
                return regex(spec["regex"], spec.get("selector"))
            if "attr" in spec:
                return attr(spec.get("selector"), spec["attr"])
            return text(spec.get("selector"))
        raise ValueError(f"Invalid field strategy: {spec!r}")


def text(selector: Optional[str] = None) -> FieldStrategy:
    return FieldStrategy(kind="text", selector=selector)


def attr(selector: Optional[str], name: str) -> FieldStrategy:
    return FieldStrategy(kind="attr", selector=selector, attr=name)


def regex(pattern: str, selector: Optional[str] = None) -> FieldStrategy:
    return FieldStrategy(kind="regex", selector=selector, pattern=pattern)


def key(path: str, template: Optional[str] = None, epoch: bool = False) -> FieldStrategy:
    return FieldStrategy(kind="key", key=path, template=template, epoch=epoch)


def first_non_empty(strategies: Iterable[FieldStrategy], node: Node) -> str:
    """Evaluate strategies in order until one yields non-empty text."""
    for strategy in strategies:
        value = strategy.apply(node)
        if value:
            return value
    return ""


def _strategies(specs: Any) -> Tuple[FieldStrategy, ...]:
    if isinstance(specs, (str, Mapping, FieldStrategy)):
        specs = [specs]
    return tuple(FieldStrategy.from_config(spec) for spec in specs)


# -----------------------------------------------------------------------------
# 抽取规则
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ExtractionRules:
    """Extraction rule set of one platform.

    Attributes:
        item: Candidate item selectors; the first one that matches wins.
            For ``json`` rules these are dotted paths to the item list
            (empty means the response itself is the list).
        fields: Field name -> ordered strategies.
        format: ``html`` (CSS selectors) or ``json`` (API responses).
        metadata: Extra values stored in ``RawRecord.metadata`` under their key.
    """

    item: Tuple[str, ...]
    fields: Mapping[str, Tuple[FieldStrategy, ...]] = field(default_factory=dict)
    format: str = "html"
    metadata: Mapping[str, Tuple[FieldStrategy, ...]] = field(default_factory=dict)

    @property
    def is_json(self) -> bool:
        return self.format == "json"

    def strategies(self, name: str) -> Tuple[FieldStrategy, ...]:
        return tuple(self.fields.get(name, ()))

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when usable)."""
        errors: List[str] = []
        if self.format not in RULE_FORMATS:
            errors.append(f"unknown rules format: {self.format}")
        if not self.is_json and not [s for s in self.item if s and s.strip()]:
            errors.append("item selector is required")
        if not self.strategies("title"):
            errors.append("title selector is required")
        if not self.strategies("link"):
            errors.append("link selector is required")
        return errors

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> "ExtractionRules":
        """Build rules from a mapping such as a ``sources.yaml`` entry.

        ``item`` may be a string or a list; ``format`` selects HTML or JSON;
        ``metadata`` maps extra keys to strategies; every other key is a
        field name whose value is a single strategy spec or a list of them.
        """
        item = data.get("item") or ()
        if isinstance(item, str):
            item = (item,)
        fields: Dict[str, Tuple[FieldStrategy, ...]] = {}
        for name, specs in data.items():
            if name in ("item", "format", "metadata") or specs is None:
                continue
            if name not in RECORD_FIELDS:
                logger.warning(f"Ignoring unknown extraction field: {name}")
                continue
            fields[name] = _strategies(specs)
        metadata = {name: _strategies(specs) for name, specs in (data.get("metadata") or {}).items() if specs}
        rules_format = str(data.get("format") or "html").lower()
        return cls(item=tuple(item), fields=fields, format=rules_format, metadata=metadata)


# -----------------------------------------------------------------------------
# 抽取入口
# -----------------------------------------------------------------------------
def select_items(soup: BeautifulSoup, selectors: Sequence[str]) -> List[Tag]:
    """Return nodes of the first item selector that matches anything."""
    for selector in selectors:
        try:
            nodes = soup.select(selector)
        except Exception as e:
            logger.warning(f"Invalid item selector {selector!r}: {e}")
            continue
        if nodes:
            return nodes
    return []


def select_json_items(data: Any, paths: Sequence[str]) -> List[JsonItem]:
    """Return the objects of the first path that leads to a non-empty list."""
    for path in paths or ("",):
        value = lookup(data, path)
        if isinstance(value, list) and value:
            return [item for item in value if isinstance(item, Mapping)]
    return []


def _extract_node(
    node: Node,
    rules: ExtractionRules,
    base_url: str,
    platform: str,
) -> RawRecord:
    values = {name: first_non_empty(rules.strategies(name), node) for name in rules.fields}

    link = values.pop("link", "")
    # 条目本身是 <a> 时直接使用其 href
    if not link and isinstance(node, Tag) and node.name == "a":
        link = (node.get("href") or "").strip()

    record = RawRecord(
        platform=platform,
        title=values.get("title", ""),
        description=values.get("description", ""),
        url=urljoin(base_url, link) if link else "",
        prize=normalize_prize(values.get("prize")),
    )
    record.apply_status_text(values.get("status"))
    for name in _DATE_FIELDS:
        raw_value = values.get(name)
        if not raw_value:
            continue
        normalized = normalize_date(raw_value)
        setattr(record, name, normalized)
        if normalized is None:
            # 保留原始文本便于排查，字段本身视为缺失
            record.metadata[f"{name}_text"] = raw_value
    for name, strategies in rules.metadata.items():
        value = first_non_empty(strategies, node)
        if value:
            record.metadata[name] = value
    return record


def _select_nodes(content: str, rules: ExtractionRules, platform: str) -> List[Node]:
    if rules.is_json:
        try:
            data = json.loads(content)
        except ValueError as e:
            logger.warning(f"[{platform}] Response is not valid JSON: {e}")
            return []
        return select_json_items(data, rules.item)
    soup = BeautifulSoup(content, "html.parser")
    return select_items(soup, rules.item)


def extract(
    content: str,
    rules: ExtractionRules,
    base_url: str,
    platform: str,
    require_title_and_url: bool = False,
) -> List[RawRecord]:
    """Extract raw records from page content.

    从页面内容（HTML 或 JSON 接口响应）中按规则抽取竞赛记录。

    Args:
        content: HTML text or JSON body, according to ``rules.format``.
        rules: Platform extraction rules.
        base_url: Base URL for resolving relative links.
        platform: Platform name stamped on every record.
        require_title_and_url: Stricter emission rule for this platform.

    Returns:
        List[RawRecord]: Records in page order.
    """
    if not content:
        return []
    nodes = _select_nodes(content, rules, platform)
    records: List[RawRecord] = []

    for index, node in enumerate(nodes):
        try:
            record = _extract_node(node, rules, base_url, platform)
        except Exception as e:
            logger.debug(f"[{platform}] Skipping item #{index}: {e}")
            continue

        if not (record.title or record.description):
            continue
        if require_title_and_url and not (record.title and record.url):
            continue
        records.append(record)

    logger.debug(f"[{platform}] Extracted {len(records)} of {len(nodes)} item node(s)")
    return records


def extract_detail(content: str, detail_rules: Mapping[str, Sequence[Any]]) -> Dict[str, str]:
    """Extract page-level fields from a contest detail page.

    详情页规则以整个文档为根节点，字段名可以是 RawRecord 字段或任意 metadata 键。

    Args:
        content: Detail page HTML.
        detail_rules: Field name -> strategy specs.

    Returns:
        Dict[str, str]: Non-empty extracted values.
    """
    if not content:
        return {}
    soup = BeautifulSoup(content, "html.parser")
    root = soup.body or soup
    result: Dict[str, str] = {}
    for name, specs in detail_rules.items():
        if isinstance(specs, (str, Mapping, FieldStrategy)):
            specs = [specs]
        try:
            value = first_non_empty([FieldStrategy.from_config(s) for s in specs], root)
        except Exception as e:
            logger.debug(f"Detail field {name!r} failed: {e}")
            continue
        if value:
            result[name] = value
    return result
