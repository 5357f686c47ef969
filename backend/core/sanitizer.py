"""
输入净化模块
在校验之前递归清洗请求体和查询参数中的自由文本

- 按类型处理：布尔值、数字、None 原样保留
- 结构性字段（ID、slug、枚举值）不做改写，交给校验器严格校验
- 富文本字段保留安全标签白名单，其他文本去除全部标签后还原为字面文本
- URL 字段不做实体转义
- 幂等：sanitize(sanitize(x)) == sanitize(x)
"""

import re
import html
import logging
from typing import Any, FrozenSet, Iterable, Optional

import bleach

logger = logging.getLogger(__name__)

# 富文本允许的标签
RICH_TEXT_TAGS = frozenset({
    "p", "br", "hr", "strong", "b", "em", "i", "u", "s", "del",
    "code", "pre", "blockquote", "ul", "ol", "li",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "a", "img", "table", "thead", "tbody", "tr", "th", "td",
})

RICH_TEXT_ATTRIBUTES = {
    "a": ["href", "title", "rel"],
    "img": ["src", "alt", "title"],
    "code": ["class"],
}

ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto"})

DEFAULT_STRUCTURAL_FIELDS = frozenset({
    "id", "slug", "sort_by", "order", "page", "limit",
    "author_id", "post_id", "parent_id", "category_id", "user_id",
    "categories", "tags", "csrf_token",
})

DEFAULT_RICH_TEXT_FIELDS = frozenset({"content"})

# URL 字段由校验器检查协议，这里只去除控制字符
DEFAULT_URL_FIELDS = frozenset({"featured_image", "image", "author_url"})

# 保留 \t \n \r，去除其余控制字符
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class InputSanitizer:
    """类型感知的输入净化器"""

    MAX_PASSES = 5

    def __init__(
        self,
        structural_fields: Optional[Iterable[str]] = None,
        rich_text_fields: Optional[Iterable[str]] = None,
        url_fields: Optional[Iterable[str]] = None
    ):
        self.structural_fields: FrozenSet[str] = frozenset(
            DEFAULT_STRUCTURAL_FIELDS if structural_fields is None else structural_fields
        )
        self.rich_text_fields: FrozenSet[str] = frozenset(
            DEFAULT_RICH_TEXT_FIELDS if rich_text_fields is None else rich_text_fields
        )
        self.url_fields: FrozenSet[str] = frozenset(
            DEFAULT_URL_FIELDS if url_fields is None else url_fields
        )

    def sanitize(self, payload: Any, field: Optional[str] = None) -> Any:
        """递归净化任意 JSON 兼容结构"""
        if isinstance(payload, dict):
            return {key: self.sanitize(value, field=str(key)) for key, value in payload.items()}

        if isinstance(payload, (list, tuple)):
            cleaned = [self.sanitize(item, field=field) for item in payload]
            return type(payload)(cleaned) if isinstance(payload, tuple) else cleaned

        if isinstance(payload, str):
            if field in self.structural_fields:
                return payload
            if field in self.url_fields:
                return _CONTROL_CHARS.sub("", payload)
            return self.clean_text(payload, rich=field in self.rich_text_fields)

        # bool / int / float / None
        return payload

    def clean_text(self, text: str, rich: bool = False) -> str:
        """净化单个字符串，反复执行直至结果稳定"""
        current = text
        for _ in range(self.MAX_PASSES):
            cleaned = self._clean_once(current, rich)
            if cleaned == current:
                return cleaned
            current = cleaned

        logger.debug("输入净化在最大轮次内未收敛，使用最后一次结果")
        return current

    @staticmethod
    def _clean_once(text: str, rich: bool) -> str:
        text = _CONTROL_CHARS.sub("", text)
        if rich:
            return bleach.clean(
                text,
                tags=RICH_TEXT_TAGS,
                attributes=RICH_TEXT_ATTRIBUTES,
                protocols=ALLOWED_PROTOCOLS,
                strip=True,
                strip_comments=True
            )
        # bleach 会转义 & < >，纯文本存储字面值
        stripped = bleach.clean(text, tags=set(), attributes={}, strip=True, strip_comments=True)
        return html.unescape(stripped)


# 默认净化器
input_sanitizer = InputSanitizer()


def sanitize(payload: Any) -> Any:
    """使用默认规则净化输入"""
    return input_sanitizer.sanitize(payload)
