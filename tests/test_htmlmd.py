from remicat.htmlmd import html_to_markdown


def test_page_with_heading_and_paragraph():
    body = "<html><head><title>Meeting Notes</title></head><body><h1>Hello</h1><p>World</p></body></html>"
    md = html_to_markdown(body)
    assert md == "# Hello\n\nWorld"
    assert "Meeting Notes" not in md


def test_links_are_rendered_inline():
    md = html_to_markdown('<p>See <a href="https://example.com/">the site</a>.</p>')
    assert md == "See [the site](https://example.com/)."


def test_bold_text():
    md = html_to_markdown("<p><strong>bold</strong> text</p>")
    assert "**bold**" in md
    assert md.endswith("text")


def test_script_and_style_are_dropped():
    md = html_to_markdown("<p>keep</p><script>var x = 1;</script><style>p{color:red}</style>")
    assert "keep" in md
    assert "var x" not in md
    assert "color" not in md


def test_entities_are_decoded():
    md = html_to_markdown("<p>a &amp; b</p>")
    assert "&amp;" not in md
    assert "a & b" in md


def test_whitespace_is_collapsed():
    md = html_to_markdown("<p>one\n\n   two</p>")
    assert md.split() == ["one", "two"]
    assert "\n" not in md


def test_list_items_on_separate_lines():
    md = html_to_markdown("<ul><li>alpha</li><li>beta</li></ul>")
    lines = md.splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("alpha")
    assert lines[1].endswith("beta")


def test_ordered_list_numbers_increase():
    md = html_to_markdown("<ol><li>first</li><li>second</li></ol>")
    lines = md.splitlines()
    assert lines[0].startswith("1")
    assert lines[1].startswith("2")


def test_preformatted_text_is_kept():
    md = html_to_markdown("<pre>a  b\n  c</pre>")
    assert "a  b\n  c" in md


def test_output_has_no_tags():
    md = html_to_markdown("<div><span>inner</span><em>x</em></div>")
    assert "<" not in md
    assert "inner" in md


def test_empty_input():
    assert not html_to_markdown("")