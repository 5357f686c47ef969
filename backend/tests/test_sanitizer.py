"""
输入净化模块测试
"""
import pytest
from core.sanitizer import InputSanitizer, sanitize


class TestSanitizer:
    """输入净化测试"""

    def setup_method(self):
        self.sanitizer = InputSanitizer()

    def test_plain_text_strips_tags(self):
        assert sanitize({"title": "<script>alert(1)</script>Hello"}) == {"title": "alert(1)Hello"}
        assert sanitize({"title": "<b>bold</b> title"}) == {"title": "bold title"}

    def test_rich_text_keeps_safe_tags(self):
        result = sanitize({"content": '<p>hi <strong>there</strong></p><script>x()</script>'})
        assert result["content"] == "<p>hi <strong>there</strong></p>x()"

    def test_rich_text_drops_unsafe_attributes(self):
        result = sanitize({"content": '<p onclick="evil()">a</p><a href="javascript:alert(1)">b</a>'})
        assert "onclick" not in result["content"]
        assert "javascript" not in result["content"]
        assert "<p>a</p>" in result["content"]

    def test_structural_fields_untouched(self):
        payload = {"slug": "my-post", "sort_by": "views", "order": "desc", "categories": [1, 2]}
        assert sanitize(payload) == payload

    def test_scalar_types_preserved(self):
        payload = {"published": True, "featured": False, "views": 3, "ratio": 1.5, "excerpt": None}
        assert sanitize(payload) == payload

    def test_nested_structures(self):
        payload = {"meta": {"title": "<i>x</i>"}, "items": ["<b>a</b>", 1]}
        assert sanitize(payload) == {"meta": {"title": "x"}, "items": ["a", 1]}

    def test_control_characters_removed(self):
        assert sanitize({"title": "a\x00b\x07c\nd"}) == {"title": "abc\nd"}

    @pytest.mark.parametrize("payload", [
        {"title": "<scr<script>ipt>alert(1)</scr</script>ipt>"},
        {"content": "<p>a &amp; b < c</p><img src=x onerror=alert(1)>"},
        {"search": "Tom & Jerry <3"},
        {"title": "普通文本", "tags": [1], "nested": [{"content": "<em>ok</em>"}]},
        "<a href='http://example.com'>link</a>",
    ])
    def test_idempotent(self, payload):
        once = self.sanitizer.sanitize(payload)
        assert self.sanitizer.sanitize(once) == once

    def test_custom_fields(self):
        sanitizer = InputSanitizer(structural_fields={"code"}, rich_text_fields={"body"})
        result = sanitizer.sanitize({"code": "<x>", "body": "<p>ok</p>", "content": "<p>no</p>"})
        assert result == {"code": "<x>", "body": "<p>ok</p>", "content": "no"}

    def test_plain_text_keeps_literal_characters(self):
        """纯文本不产生 HTML 实体"""
        assert sanitize({"title": "Tom & Jerry"}) == {"title": "Tom & Jerry"}
        assert sanitize({"search": "a < b > c"}) == {"search": "a < b > c"}

    def test_escaped_markup_cannot_smuggle_tags(self):
        result = sanitize({"title": "&lt;script&gt;alert(1)&lt;/script&gt;Hi"})
        assert result == {"title": "alert(1)Hi"}

    def test_url_fields_untouched(self):
        payload = {
            "featured_image": "https://cdn.example.com/a.png?w=1&h=2",
            "author_url": "https://example.com/?a=1&b=2",
        }
        assert sanitize(payload) == payload

    def test_url_fields_drop_control_characters(self):
        assert sanitize({"image": "https://a.example/x\x00.png"}) == {"image": "https://a.example/x.png"}
