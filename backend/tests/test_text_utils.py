"""
文本工具单元测试
覆盖：slug 生成、摘要生成、阅读时长
"""

from unittest.mock import patch

from utils.text import (
    generate_slug,
    generate_excerpt,
    calculate_reading_time,
    strip_markup,
    truncate
)


class TestGenerateSlug:

    def test_basic(self):
        assert generate_slug("Hello World") == "hello-world"

    def test_removes_punctuation(self):
        assert generate_slug("What's New? (v2.0)!") == "whats-new-v20"

    def test_collapses_separators(self):
        assert generate_slug("  a --- b__c  ") == "a-b-c"

    def test_chinese(self):
        assert generate_slug("你好 世界") == "你好-世界"

    def test_empty(self):
        assert generate_slug("") == ""
        assert generate_slug("!!!") == ""

    def test_unique_suffix(self):
        with patch("utils.text.time.time", return_value=1.23456):
            assert generate_slug("post", unique=True) == "post-1234"


class TestExcerpt:

    def test_short_content(self):
        assert generate_excerpt("Short text") == "Short text"

    def test_strips_markup(self):
        assert strip_markup("<p># Title</p> **bold** [link](http://x.com)") == "Title bold link"

    def test_cuts_at_word_boundary(self):
        content = "word " * 50
        excerpt = generate_excerpt(content, max_length=22)
        assert excerpt == "word word word word..."

    def test_no_space(self):
        assert generate_excerpt("a" * 20, max_length=10) == "a" * 10 + "..."


class TestReadingTime:

    def test_reading_time(self):
        assert calculate_reading_time("") == 0
        assert calculate_reading_time("word " * 200) == 1
        assert calculate_reading_time("word " * 201) == 2


def test_truncate():
    assert truncate("abcdef", 3) == "abc..."
    assert truncate("abc", 3) == "abc"
    assert truncate(None, 3) == ""
