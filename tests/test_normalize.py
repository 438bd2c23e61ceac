import json

from wattpad import NO_CONTENT, NormalizedChapter, html_to_text, normalize, parse_payload


def test_block_then_break_collapses_to_one_newline():
    assert html_to_text("<p>Hello</p><br>World") == "Hello\nWorld"


def test_sibling_paragraphs_get_blank_line():
    assert html_to_text("<p>A</p><p>B</p>") == "A\n\nB"


def test_double_break_is_paragraph():
    assert html_to_text("A<br><br>B") == "A\n\nB"
    assert html_to_text("A<br>B") == "A\nB"


def test_entities_and_nbsp():
    assert html_to_text("<p>Tom &amp; Jerry&nbsp;here</p>") == "Tom & Jerry here"


def test_scripts_and_styles_dropped():
    out = html_to_text("<style>p{color:red}</style><p>Hi</p><script>alert(1)</script>")
    assert out == "Hi"


def test_plain_text_keeps_its_lines():
    assert html_to_text("line one\nline two") == "line one\nline two"


def test_inline_tags_do_not_break_lines():
    assert html_to_text("<p>a <b>bold</b> <i>move</i></p>") == "a bold move"


def test_empty_fragment():
    assert html_to_text("") == ""
    assert html_to_text(None) == ""
    assert html_to_text("<p> </p><br>") == ""


def test_normalize_record_list():
    payload = [{"text": "<p>One</p>"}, {"text": "<p>Two</p>"}]
    assert normalize(payload) == "One\n\nTwo"
    assert normalize(json.dumps(payload)) == "One\n\nTwo"


def test_normalize_single_record():
    assert normalize({"id": 7, "content": "<p>Inside</p>"}) == "Inside"


def test_normalize_renamed_field_uses_longest_string():
    record = {"id": "1", "html": "<p>Longest field wins</p>"}
    assert normalize(record) == "Longest field wins"


def test_normalize_raw_markup():
    assert normalize("<div><p>Raw</p></div>") == "Raw"


def test_normalize_skips_junk_items():
    assert normalize([None, 3, {"text": "<p>kept</p>"}, ""]) == "kept"


def test_normalize_nothing():
    assert normalize(None) == ""
    assert normalize([]) == ""


def test_parse_payload_falls_back_to_raw():
    assert parse_payload("[{broken") == "[{broken"
    assert parse_payload("Array") == "Array"
    assert parse_payload("<p>x</p>") == "<p>x</p>"
    assert parse_payload('"just a string"') == '"just a string"'
    assert parse_payload('{"text": "a"}') == {"text": "a"}


def test_blank_chapter_body_becomes_no_content():
    assert NormalizedChapter(title="t", body="   ").body == NO_CONTENT
    assert NormalizedChapter(title="t", body="").body == NO_CONTENT
    assert NormalizedChapter(title="t", body="x").body == "x"


def test_normalize_record_with_break():
    assert normalize([{"text": "<p>Hello</p><br>World"}]) == "Hello\nWorld"


def test_normalize_sentinel_text_is_plain_text():
    assert normalize("Array") == "Array"
