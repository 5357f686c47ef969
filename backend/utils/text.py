"""
文本处理工具
slug、摘要与阅读时长
"""

import re
import math
import time

WORDS_PER_MINUTE = 200

_HTML_TAG = re.compile(r"<[^>]*>")
_MARKDOWN_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_MARKDOWN_MARKS = re.compile(r"[#*_`~]")
_WHITESPACE = re.compile(r"\s+")


def generate_slug(text: str, unique: bool = False) -> str:
    """
    生成URL友好的slug

    Args:
        text: 原始文本
        unique: 是否添加时间戳后缀

    Returns:
        slug字符串（只含小写字母、数字、中文和横线）
    """
    if not text:
        return ""

    slug = text.lower()
    # 这些标点直接删除，不产生分隔符
    slug = re.sub(r"[*+~.()'\"!:@]", "", slug)
    slug = re.sub(r"[^a-z0-9一-龥]+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")

    if unique:
        suffix = int(time.time() * 1000) % 100000
        slug = f"{slug}-{suffix}" if slug else str(suffix)

    return slug


def strip_markup(content: str) -> str:
    """去除 HTML 标签与常见 Markdown 标记，并规整空白"""
    text = _HTML_TAG.sub("", content or "")
    text = _MARKDOWN_LINK.sub(r"\1", text)
    text = _MARKDOWN_MARKS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def generate_excerpt(content: str, max_length: int = 150) -> str:
    """
    生成摘要

    超长时在最后一个完整单词处截断并追加 "..."
    """
    plain = strip_markup(content)
    if len(plain) <= max_length:
        return plain

    truncated = plain[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space] + "..."
    return truncated + "..."


def calculate_reading_time(content: str) -> int:
    """按每分钟 200 词估算阅读时长（分钟）"""
    words = len((content or "").split())
    return math.ceil(words / WORDS_PER_MINUTE)


def truncate(text: str, length: int, suffix: str = "...") -> str:
    """截取文本"""
    if not text or len(text) <= length:
        return text or ""
    return text[:length] + suffix
