"""Tests for question sanitizing."""

import pytest

from docchat.sanitize import MAX_INPUT_LENGTH, sanitize_input, strip_tags


class TestSanitizeInput:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("<b>What</b> is the <i>vacation</i>   policy?", "What is the vacation policy?"),
            ("<script>alert(1)</script>Hello", "Hello"),
            ("<style>p { color: red }</style><p>Benefits</p>", "Benefits"),
            ("Fish &amp; chips", "Fish & chips"),
            ("What is 2 < 3?", "What is 2 < 3?"),
            ("line one\n\n\tline two  ", "line one line two"),
            ("<p></p>", ""),
        ],
    )
    def test_cleanup(self, raw, expected):
        assert sanitize_input(raw) == expected

    def test_truncates(self):
        assert sanitize_input("x" * 20, max_length=5) == "xxxxx"

    def test_default_cap(self):
        assert len(sanitize_input("a" * (MAX_INPUT_LENGTH + 50))) == MAX_INPUT_LENGTH

    def test_no_trailing_space_after_cut(self):
        assert sanitize_input("ab cd", max_length=3) == "ab"

    def test_strip_tags_keeps_attribute_free_text(self):
        assert strip_tags('<a href="https://example.com">handbook</a>') == "handbook"
