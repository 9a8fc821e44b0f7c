"""Unit tests for text cleaning and section extraction."""
import pytest

from vaultsearch.rag.cleaner import clean_text, remove_links
from vaultsearch.rag.sections import compile_delimiter, extract_sections

NAME = "test"


def labels(rows):
    return [(r.section_label, r.body) for r in rows]


def test_remove_http_link():
    assert remove_links("![](https://test-link)") == ""


def test_remove_pasted_image():
    text = "![Pasted image 20220415211535](Pics/Pasted%20image%2020220415211535.png)"
    assert remove_links(text) == ""


def test_remove_embedded_keeps_surrounding_lines():
    text = (
        "## Test\n![Pasted image](Pics/a.png)\n"
        "### Test2\n![Pasted image](Pics/b.png)"
    )
    assert remove_links(text) == "## Test\n\n### Test2\n"


def test_clean_text_strips_hashtags_and_whitespace():
    assert clean_text("  ## Heading #tag  ") == "Heading tag"


def test_clean_text_truncates():
    assert clean_text("a" * 9000) == "a" * 8191
    assert len(clean_text("word " * 3000, max_length=10)) <= 10


@pytest.mark.parametrize(
    "text",
    [
        "## Test",
        "  spaced   out  ",
        "![x](y) after link",
        "#!#[a](b) mixed",
        "x" * 8190 + "  yz",
    ],
)
def test_clean_text_is_idempotent(text):
    once = clean_text(text)
    assert clean_text(once) == once


def test_single_line():
    rows = extract_sections(NAME, " ", "## Test", r"^## \S*")

    assert len(rows) == 1
    assert rows[0].document_name == "test"
    assert rows[0].section_label == "Test"
    assert rows[0].body == "Test"


def test_empty_section():
    assert extract_sections(NAME, " ", " ", ".") == []


def test_empty_section_inbetween():
    rows = extract_sections(NAME, " ", "Test\n \nTest2\n ", ".")
    assert labels(rows) == [("Test", "Test"), ("Test2", "Test2")]


def test_empty_body():
    rows = extract_sections(NAME, " ", "## Test\n ", r"^## \S*")
    assert labels(rows) == [("Test", "Test")]


def test_non_empty_body():
    rows = extract_sections(NAME, "100", "## Test\nThis is a test body.", "## ")

    assert len(rows) == 1
    assert rows[0].section_label == "Test"
    assert rows[0].body == "Test This is a test body."
    assert rows[0].modified_at == "100"


def test_double_line():
    rows = extract_sections(NAME, " ", "## Test\n## Test2", r"^## .*")
    assert labels(rows) == [("Test", "Test"), ("Test2", "Test2")]


def test_match_all_headers():
    text = (
        "# Test1\ncontent1\n## Test2\ncontent2\n### Test3\ncontent3\n"
        "#### Test4\ncontent4\n##### Test5\ncontent5\n###### Test6\ncontent6"
    )
    rows = extract_sections(NAME, " ", text, r"^#{1,6} ")

    assert labels(rows) == [(f"Test{i}", f"Test{i} content{i}") for i in range(1, 7)]


def test_leading_lines_seed_label():
    text = (
        "# Test1\ncontent1\n## Test2\ncontent2\n### Test3\ncontent3\n"
        "#### Test4\ncontent4\n##### Test5\ncontent5\n###### Test6\ncontent6"
    )
    rows = extract_sections(NAME, " ", text, r"^### \S*")

    assert len(rows) == 2
    assert rows[0].section_label == "Test1"
    assert rows[0].body == "Test1 content1 Test2 content2"
    assert rows[1].section_label == "Test3"
    assert rows[1].body == "Test3 content3 Test4 content4 Test5 content5 Test6 content6"


def test_no_match_makes_single_unit():
    rows = extract_sections(NAME, " ", "first line\nsecond line\nthird", "^NEVER$")
    assert labels(rows) == [("first line", "first line second line third")]


def test_header_with_links():
    text = (
        "## Test\n![Pasted image](Pics/a.png)\n"
        "### Test2\n![Pasted image](Pics/b.png)"
    )
    rows = extract_sections(NAME, " ", text, "^## .*")
    assert labels(rows) == [("Test", "Test Test2")]


def test_sample_note():
    text = """## Unreliable Broadcast
Does not guarantee anything. Such events are allowed:
![](https://i.imgur.com/rgh87f2.png)
## Best Effort Broadcast
Guarantees reliability only if sender is correct
- BEB1. Best-effort-Validity: If pi and pj are correct, then any broadcast by pi is eventually delivered by pj
- BEB2. No duplication: No message delivered more than once
- BEB3. No creation: No message delivered unless broadcast
![](https://i.imgur.com/LdLrtA0.png)
"""
    rows = extract_sections(NAME, " ", text, "##")

    assert len(rows) == 2
    assert rows[0].section_label == "Unreliable Broadcast"
    assert rows[0].body == "Unreliable Broadcast Does not guarantee anything. Such events are allowed:"
    assert rows[1].section_label == "Best Effort Broadcast"
    assert rows[1].body == (
        "Best Effort Broadcast Guarantees reliability only if sender is correct "
        "- BEB1. Best-effort-Validity: If pi and pj are correct, then any broadcast by pi "
        "is eventually delivered by pj "
        "- BEB2. No duplication: No message delivered more than once "
        "- BEB3. No creation: No message delivered unless broadcast"
    )


def test_empty_delimiter_matches_every_line():
    text = (
        "## Test\n![Pasted image](Pics/a.png)\n"
        "### Test2\n![Pasted image](Pics/b.png)"
    )
    rows = extract_sections(NAME, " ", text, "")
    assert labels(rows) == [("Test", "Test"), ("Test2", "Test2")]


def test_invalid_delimiter_falls_back_to_every_line():
    delimiter = compile_delimiter("([unclosed")
    assert delimiter.fallback is True

    rows = extract_sections(NAME, " ", "one\ntwo\n\nthree", "([unclosed")
    assert labels(rows) == [("one", "one"), ("two", "two"), ("three", "three")]


def test_valid_delimiter_is_not_flagged():
    assert compile_delimiter("^## ").fallback is False


def test_extraction_is_deterministic():
    text = "# A\nbody a\n## B\nbody b\n\n## C"
    first = extract_sections(NAME, "1", text, "^#+ ")
    second = extract_sections(NAME, "1", text, "^#+ ")
    assert first == second


def test_every_content_line_lands_in_exactly_one_body():
    lines = ["# Alpha", "apples", "", "## Beta", "bananas", "![img](x.png)", "cherries"]
    rows = extract_sections(NAME, "1", "\n".join(lines), "^#+ ")

    bodies = " | ".join(r.body for r in rows)
    for word in ("apples", "bananas", "cherries"):
        assert bodies.count(word) == 1
    assert "img" not in bodies
