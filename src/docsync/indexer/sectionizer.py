"""Sectioning logic for splitting documents at heading boundaries."""

import re
from collections.abc import Callable
from dataclasses import dataclass

from docsync.indexer.models import ParsedSection
from docsync.indexer.parser import Node, heading_plain_text

CUSTOM_ANCHOR_PATTERN = re.compile(r"^(.*?)\s*\[#([^\]]*)\]\s*$")

# Characters dropped by the primary slug transform
SLUG_STRIP_PATTERN = re.compile(r"[^\w\- ]")


@dataclass
class Heading:
    """A heading split into its display text and optional custom anchor."""

    text: str
    custom_anchor: str | None = None


def parse_heading(heading: str) -> Heading:
    """
    Parse a heading which can optionally carry a custom anchor.

    ``### My Heading [#my-custom-anchor]`` yields text "My Heading" and
    anchor "my-custom-anchor".
    """
    match = CUSTOM_ANCHOR_PATTERN.match(heading)
    if match:
        return Heading(text=match.group(1).strip(), custom_anchor=match.group(2).strip())
    return Heading(text=heading.strip())


def slugify(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace into hyphens."""
    text = SLUG_STRIP_PATTERN.sub("", text.lower().strip())
    return re.sub(r"\s+", "-", text)


def fallback_slug(text: str) -> str:
    """Conservative slug for headings the primary transform reduces to nothing."""
    text = re.sub(r"[^A-Za-z0-9 ]", "", text)
    return re.sub(r" +", "-", text)


class Slugger:
    """Generates slugs that are unique within one document.

    The n-th repeat of a base slug gets ``-n`` appended, so two "Foo"
    headings become ``foo`` and ``foo-1``.
    """

    def __init__(self) -> None:
        self._occurrences: dict[str, int] = {}

    def slug(self, heading: Heading) -> str:
        source = heading.custom_anchor if heading.custom_anchor is not None else heading.text
        base = slugify(source) or fallback_slug(heading.text)
        return self._unique(base)

    def _unique(self, base: str) -> str:
        result = base
        if base in self._occurrences:
            count = self._occurrences[base]
            while True:
                count += 1
                result = f"{base}-{count}"
                if result not in self._occurrences:
                    break
            self._occurrences[base] = count
        else:
            self._occurrences[base] = 0
        self._occurrences.setdefault(result, 0)
        return result


def generate_slug(heading: str) -> str:
    """Slug for a single heading string, without duplicate tracking."""
    return Slugger().slug(parse_heading(heading))


def split_tree_by(nodes: list[Node], predicate: Callable[[Node], bool]) -> list[list[Node]]:
    """
    Split top-level nodes into runs, starting a new run at each node matching
    ``predicate``. The splitting node opens its run.
    """
    runs: list[list[Node]] = []
    for node in nodes:
        if not runs or predicate(node):
            runs.append([node])
        else:
            runs[-1].append(node)
    return runs


def render_node(node: Node) -> str:
    """Serialize one node, trailing whitespace stripped from every line."""
    lines = [line.rstrip() for line in node.text().split("\n")]
    return "\n".join(lines).strip("\n")


def serialize_nodes(nodes: list[Node]) -> str:
    """
    Serialize a node span deterministically.

    Nodes adjacent in the source are joined by a newline, nodes separated by
    blank lines (or by pruned nodes) by exactly one blank line.
    """
    parts: list[str] = []
    previous: Node | None = None
    for node in nodes:
        if previous is not None:
            parts.append("\n" if previous.end_line == node.line else "\n\n")
        parts.append(render_node(node))
        previous = node
    return "".join(parts)


def is_heading(node: Node) -> bool:
    return node.kind == "heading"


def split_sections(nodes: list[Node]) -> list[ParsedSection]:
    """
    Split pruned top-level nodes into sections.

    Rules:
    1. Every heading opens a new section
    2. Content before the first heading forms a preamble with no heading or slug
    3. A section holds every following non-heading node up to the next heading
    """
    slugger = Slugger()
    sections: list[ParsedSection] = []

    for run in split_tree_by(nodes, is_heading):
        content = serialize_nodes(run)
        first = run[0]
        if not is_heading(first):
            sections.append(ParsedSection(content=content))
            continue

        heading = parse_heading(heading_plain_text(first.text()))
        sections.append(
            ParsedSection(content=content, heading=heading.text, slug=slugger.slug(heading))
        )

    return sections
