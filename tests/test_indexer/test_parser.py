"""Tests for the markdown/MDX parser."""

import pytest

from docsync.errors import ParseError
from docsync.indexer.parser import (
    Node,
    filter_nodes,
    heading_plain_text,
    is_prose,
    parse_document,
    parse_frontmatter_meta,
    parse_meta_export,
    split_inline,
)

MDX_DOC = """\
import { Callout } from "../components"

export const meta = {
  title: "Guide",
  order: 2,
}

# Guide

<Callout>
  Be careful.
</Callout>

Some text with {props.value} inline.
"""


class TestParseDocument:
    def test_plain_markdown(self):
        parsed = parse_document("# Title\n\nHello world.\n", mdx=False)
        assert [n.kind for n in parsed.nodes] == ["heading", "paragraph"]
        assert parsed.meta is None

    def test_mdx_constructs_are_pruned(self):
        parsed = parse_document(MDX_DOC)
        assert [n.kind for n in parsed.nodes] == ["heading", "paragraph"]
        text = "\n".join(n.text() for n in parsed.nodes)
        assert "import" not in text
        assert "Callout" not in text
        assert "Be careful" not in text
        assert "props.value" not in text
        assert "Some text with" in text

    def test_mdx_meta_export(self):
        parsed = parse_document(MDX_DOC)
        assert parsed.meta == {"title": "Guide", "order": 2}

    def test_node_lines_follow_source(self):
        parsed = parse_document(MDX_DOC)
        heading, paragraph = parsed.nodes
        assert heading.line == 7
        assert paragraph.line == 13

    def test_windows_newlines(self):
        parsed = parse_document("# Title\r\n\r\nBody\r\n", mdx=False)
        assert [n.text() for n in parsed.nodes] == ["# Title", "Body"]

    def test_unclosed_jsx_raises(self):
        with pytest.raises(ParseError):
            parse_document("# Title\n\n<Callout>\n\nnever closed\n")

    def test_unclosed_inline_expression_raises(self):
        with pytest.raises(ParseError):
            parse_document("Text {unclosed\n")

    def test_unterminated_export_raises(self):
        content = "# Title\n\nexport const meta = {\n  title: \"Guide\",\n\n## Install\n\nRun it.\n"
        with pytest.raises(ParseError, match="line 3"):
            parse_document(content)

    def test_esm_at_end_of_document(self):
        parsed = parse_document('# Title\n\nexport const meta = { title: "End" }\n')
        assert [n.kind for n in parsed.nodes] == ["heading"]

    def test_md_files_ignore_mdx_syntax(self):
        parsed = parse_document("Text {not an expression\n\n<Callout>\n", mdx=False)
        assert "{not an expression" in parsed.nodes[0].text()

    def test_fenced_code_is_not_scanned_for_mdx(self):
        content = "# Example\n\n```js\nconst a = {\n<Broken>\n```\n"
        parsed = parse_document(content)
        assert [n.kind for n in parsed.nodes] == ["heading", "fence"]
        assert "<Broken>" in parsed.nodes[1].text()

    def test_inline_code_is_kept(self):
        parsed = parse_document("Use `{value}` here.\n")
        assert parsed.nodes[0].text() == "Use `{value}` here."

    def test_paragraph_of_only_jsx_is_dropped(self):
        parsed = parse_document("# Title\n\n<Badge /> {count}\n")
        assert [n.kind for n in parsed.nodes] == ["heading"]

    def test_empty_document(self):
        parsed = parse_document("")
        assert parsed.nodes == []
        assert parsed.meta is None


class TestMeta:
    def test_drops_non_literal_properties(self):
        source = """export const meta = {
  title: 'A',
  computed: 1 + 2,
  fn: getTitle(),
  tags: ["a", "b"],
  mixed: ["a", x],
  nested: { ok: true, bad: x },
  // comment
  ...base,
}"""
        assert parse_meta_export(source) == {
            "title": "A",
            "tags": ["a", "b"],
            "nested": {"ok": True},
        }

    def test_literal_types(self):
        source = 'export const meta = { a: 1.5, b: -2, c: null, d: false, "e-f": "x\\ny" }'
        assert parse_meta_export(source) == {"a": 1.5, "b": -2, "c": None, "d": False, "e-f": "x\ny"}

    def test_template_with_substitution_is_dropped(self):
        source = "export const meta = { a: `plain`, b: `${name}` }"
        assert parse_meta_export(source) == {"a": "plain"}

    def test_other_exports_are_not_meta(self):
        assert parse_meta_export("export const config = { a: 1 }") is None

    def test_non_object_meta(self):
        assert parse_meta_export("export const meta = buildMeta()") is None

    def test_frontmatter_fallback(self):
        parsed = parse_document("---\ntitle: Hello\ndate: 2024-01-02\n---\n\n# Hello\n", mdx=False)
        assert parsed.meta == {"title": "Hello", "date": "2024-01-02"}
        assert [n.kind for n in parsed.nodes] == ["heading"]

    def test_meta_export_wins_over_frontmatter(self):
        content = '---\ntitle: From YAML\n---\n\nexport const meta = { title: "From export" }\n\n# Hi\n'
        assert parse_document(content).meta == {"title": "From export"}

    def test_invalid_frontmatter_yields_no_meta(self):
        assert parse_frontmatter_meta("---\ntitle: [unclosed\n---") is None

    def test_scalar_frontmatter_yields_no_meta(self):
        assert parse_frontmatter_meta("---\njust a string\n---") is None


class TestHeadingPlainText:
    def test_strips_atx_markup(self):
        assert heading_plain_text("## Hello `code` *world*") == "Hello code world"

    def test_strips_closing_hashes(self):
        assert heading_plain_text("# Title ##") == "Title"

    def test_setext_heading(self):
        assert heading_plain_text("Title\n=====") == "Title"

    def test_keeps_custom_anchor(self):
        assert heading_plain_text("### Setup [#install]") == "Setup [#install]"


class TestInline:
    def test_split_inline_spans(self):
        spans = split_inline("a {b} `c` <D>e</D>")
        assert [s.kind for s in spans] == [
            "text",
            "mdxTextExpression",
            "text",
            "inlineCode",
            "text",
            "mdxJsxTextElement",
        ]

    def test_escaped_brace_is_text(self):
        spans = split_inline("a \\{b")
        assert [s.kind for s in spans] == ["text"]

    def test_filter_nodes_prunes_subtrees(self):
        node = Node(
            kind="paragraph",
            source="a {b}",
            children=[Node(kind="text", source="a "), Node(kind="mdxTextExpression", source="{b}")],
        )
        [kept] = filter_nodes([node], is_prose)
        assert kept.text() == "a "
        assert node.text() == "a {b}"
