"""Tests for security utilities."""

import pytest

from revealmatch.utils.errors import ValidationError
from revealmatch.utils.security import escape_html, sanitize_message


def test_escape_html_basic():
    assert escape_html("<b>Bold</b>") == "&lt;b&gt;Bold&lt;/b&gt;"
    assert escape_html("Me & You") == "Me &amp; You"
    assert escape_html("<script>alert('xss')</script>") == "&lt;script&gt;alert(&#x27;xss&#x27;)&lt;/script&gt;"


def test_escape_html_none():
    assert escape_html(None) == ""


def test_sanitize_message_trims_and_escapes():
    assert sanitize_message("  hello <b>you</b>  ") == "hello &lt;b&gt;you&lt;/b&gt;"


@pytest.mark.parametrize("content", [None, "", "   \n\t "])
def test_sanitize_message_rejects_empty(content):
    with pytest.raises(ValidationError):
        sanitize_message(content)


def test_sanitize_message_rejects_too_long():
    with pytest.raises(ValidationError) as exc_info:
        sanitize_message("x" * 11, max_length=10)
    assert exc_info.value.details == {"length": 11, "max_length": 10}


def test_sanitize_message_accepts_limit():
    assert sanitize_message("x" * 2000) == "x" * 2000
