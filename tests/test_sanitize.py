import pytest
from markupsafe import Markup

from schoolnews.utils.sanitize import (
    BleachSanitizer,
    RegexSanitizer,
    get_sanitizer,
    linkify,
    prepare_comment,
    render_comment,
    sanitize_html,
    strip_javascript,
)


def test_linkify_adds_scheme_to_bare_domain():
    assert linkify("Visit example.com today") == 'Visit <a href="http://example.com">example.com</a> today'


def test_linkify_keeps_existing_scheme_and_path():
    text = "Slides at https://example.com/science/fair?year=2024"
    assert linkify(text) == (
        'Slides at <a href="https://example.com/science/fair?year=2024">'
        "https://example.com/science/fair?year=2024</a>"
    )


def test_linkify_scheme_check_is_case_insensitive():
    assert linkify("HTTPS://Example.com") == '<a href="HTTPS://Example.com">HTTPS://Example.com</a>'


def test_linkify_leaves_plain_text_alone():
    assert linkify("See you at the assembly") == "See you at the assembly"
    assert linkify("") == ""
    assert linkify(None) == ""


def test_linkify_does_not_nest_anchors():
    once = linkify("Read www.example.com now")
    assert linkify(once) == once
    anchor = '<a href="https://example.com">example.com</a>'
    assert linkify(anchor) == anchor


def test_sanitize_allows_basic_tags():
    html = "<p>Hello <strong>world</strong> and <em>friends</em><br></p>"
    assert sanitize_html(html) == html


def test_sanitize_strips_disallowed_tags_but_keeps_text():
    assert sanitize_html("<script>alert(1)</script>hello") == "alert(1)hello"
    assert sanitize_html("<b>bold</b> <img src=x onerror=alert(1)>") == "bold "


def test_sanitize_drops_disallowed_attributes():
    assert sanitize_html('<p onclick="steal()">hi</p>') == "<p>hi</p>"
    assert sanitize_html('<span style="color: red" class="x">hi</span>') == '<span style="color: red">hi</span>'


def test_sanitize_removes_javascript_from_href():
    cleaned = sanitize_html('<a href="javascript:alert(1)">click</a>')
    assert cleaned == '<a href="alert(1)">click</a>'
    assert sanitize_html('<a href="javascript:JavaScript:alert(1)">x</a>') == '<a href="alert(1)">x</a>'


def test_sanitize_keeps_javascript_later_in_url():
    html = '<a href="http://example.com/?q=javascript:tips">search</a>'
    assert sanitize_html(html) == html


def test_sanitize_keeps_closing_slash():
    assert sanitize_html('line<br/>next') == "line<br>next"
    assert sanitize_html('<p>a</p class="x">') == "<p>a</p>"


def test_sanitize_cannot_splice_new_tags():
    cleaned = sanitize_html("<scr<script>ipt>alert(1)</script>")
    assert "<script" not in cleaned


def test_sanitize_is_idempotent():
    samples = [
        '<p onclick="x()">Hi <a href="javascript:void(0)" target="_blank">there</a></p>',
        "<scr<script>ipt>alert(1)</script>",
        '<div style="margin: 0"><span>ok</span></div>',
    ]
    for sample in samples:
        once = sanitize_html(sample)
        assert sanitize_html(once) == once


def test_strip_javascript():
    assert strip_javascript("JavaScript:alert(1)") == "alert(1)"
    assert strip_javascript("  javascript:alert(1)") == "alert(1)"
    assert strip_javascript("java\tscript:alert(1)") == "alert(1)"
    assert strip_javascript("notes.html#javascript:") == "notes.html#javascript:"
    assert strip_javascript("https://example.com") == "https://example.com"


def test_prepare_comment_linkifies_then_sanitizes():
    stored = prepare_comment("  Check www.example.com <b>now</b>  ")
    assert stored == 'Check <a href="http://www.example.com">www.example.com</a> now'


def test_render_comment_returns_markup():
    rendered = render_comment('<p>ok</p><script>x</script>')
    assert isinstance(rendered, Markup)
    assert str(rendered) == "<p>ok</p>x"


def test_bleach_sanitizer_strips_scripts_and_bad_protocols():
    sanitizer = BleachSanitizer()
    cleaned = sanitizer.clean('<p>Hello</p><script>alert(1)</script><a href="javascript:alert(1)">bad</a>')

    assert "<script>" not in cleaned
    assert "<p>Hello</p>" in cleaned
    assert "javascript:" not in cleaned


def test_bleach_sanitizer_keeps_safe_links():
    cleaned = prepare_comment("Visit example.com", BleachSanitizer())
    assert 'href="http://example.com"' in cleaned


def test_get_sanitizer():
    assert isinstance(get_sanitizer("regex"), RegexSanitizer)
    assert isinstance(get_sanitizer("Bleach"), BleachSanitizer)
    with pytest.raises(ValueError):
        get_sanitizer("lxml")
