"""Parser for markdown/MDX documents into a pruned prose tree.

MDX constructs (ESM, JSX, expressions) are recognized by a fence-aware line
scanner; the prose between them is parsed with markdown-it-py. The result is a
flat list of top-level ``Node`` objects, a small tagged union keyed by
``Node.kind``. Metadata is read from ``export const meta = {...}`` or, when
absent, from YAML frontmatter.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import yaml
from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from docsync.errors import ParseError

logger = logging.getLogger(__name__)

# Node kinds removed before sectioning
NON_PROSE_KINDS = frozenset(
    {
        "frontmatter",
        "mdxjsEsm",
        "mdxJsxFlowElement",
        "mdxJsxTextElement",
        "mdxFlowExpression",
        "mdxTextExpression",
    }
)

# Block kinds whose text is split into inline spans
INLINE_CONTAINERS = frozenset(
    {"heading", "paragraph", "bullet_list", "ordered_list", "blockquote", "table"}
)

# HTML elements that never take children, so never need a closing tag
VOID_ELEMENTS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}
)

FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")
ATX_HEADING_RE = re.compile(r"^ {0,3}#{1,6}(\s|$)")
ESM_RE = re.compile(r"^(import|export)\s")
JSX_FLOW_RE = re.compile(r"^ {0,3}<([A-Za-z>])")
EXPRESSION_FLOW_RE = re.compile(r"^ {0,3}\{")
JSX_OPEN_RE = re.compile(r"<(?:([A-Za-z][\w.\-]*(?::[\w\-]+)?)(?=[\s/>])|(?=>))")
META_EXPORT_RE = re.compile(r"^export\s+(?:const|let|var)\s+meta\s*=\s*")
NUMBER_RE = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
IDENTIFIER_RE = re.compile(r"[A-Za-z_$][\w$]*")

_md = MarkdownIt("commonmark").enable("table")


@dataclass
class Node:
    """A node of the document tree.

    ``source`` is the raw text the node spans. Containers with inline
    ``children`` render as the concatenation of their children, so pruning an
    inline child removes its text from the container.
    """

    kind: str
    source: str = ""
    line: int = 0  # First source line, 0-based
    end_line: int = 0  # Exclusive
    children: list["Node"] = field(default_factory=list)

    def text(self) -> str:
        if self.children:
            return "".join(child.text() for child in self.children)
        return self.source


@dataclass
class ParsedDocument:
    """Result of parsing one document."""

    meta: dict[str, Any] | None
    nodes: list[Node]


def normalize_newlines(text: str) -> str:
    """Normalize Windows newlines to Unix."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def filter_nodes(nodes: list[Node], predicate: Callable[[Node], bool]) -> list[Node]:
    """Return a copy of ``nodes`` without the nodes (and subtrees) failing ``predicate``."""
    kept: list[Node] = []
    for node in nodes:
        if not predicate(node):
            continue
        children = filter_nodes(node.children, predicate)
        # A container stripped of every inline child has no text left
        source = node.source if children or not node.children else ""
        kept.append(
            Node(
                kind=node.kind,
                source=source,
                line=node.line,
                end_line=node.end_line,
                children=children,
            )
        )
    return kept


def is_prose(node: Node) -> bool:
    return node.kind not in NON_PROSE_KINDS


# Low-level scanning helpers


def _skip_string(text: str, pos: int) -> int | None:
    """Return the index after the string literal starting at ``pos``."""
    quote = text[pos]
    i = pos + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return None


def _match_braces(text: str, pos: int) -> int | None:
    """Return the index after the ``}`` balancing the ``{`` at ``pos``."""
    depth = 0
    i = pos
    while i < len(text):
        ch = text[i]
        if ch in "\"'`":
            end = _skip_string(text, i)
            if end is None:
                return None
            i = end
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def _scan_tag(text: str, pos: int) -> tuple[int, bool] | None:
    """Scan the JSX tag starting at ``pos``.

    Returns (index after ``>``, self_closing), or None when the tag never ends.
    """
    i = pos + 1
    while i < len(text):
        ch = text[i]
        if ch in "\"'":
            end = _skip_string(text, i)
            if end is None:
                return None
            i = end
            continue
        if ch == "{":
            end = _match_braces(text, i)
            if end is None:
                return None
            i = end
            continue
        if ch == ">":
            return i + 1, text[pos:i].rstrip().endswith("/")
        i += 1
    return None


def _match_jsx(text: str, pos: int) -> int | None:
    """Return the index after the JSX element starting at ``pos``.

    Returns None if ``pos`` does not start a JSX tag at all.

    Raises:
        ParseError: If the element is not terminated.
    """
    match = JSX_OPEN_RE.match(text, pos)
    if not match:
        return None
    name = match.group(1) or ""
    tag = _scan_tag(text, pos)
    if tag is None:
        raise ParseError(f"Unterminated JSX tag <{name}>")
    end, self_closing = tag
    if self_closing or name.lower() in VOID_ELEMENTS:
        return end

    if name:
        open_re = re.compile("<" + re.escape(name) + r"(?=[\s/>])")
        close_re = re.compile("</" + re.escape(name) + r"\s*>")
    else:
        open_re = re.compile("<>")
        close_re = re.compile(r"</\s*>")

    depth = 1
    i = end
    while depth:
        next_close = close_re.search(text, i)
        if not next_close:
            raise ParseError(f"Unclosed JSX element <{name}>")
        next_open = open_re.search(text, i, next_close.start())
        if next_open:
            inner = _scan_tag(text, next_open.start())
            if inner is None:
                raise ParseError(f"Unterminated JSX tag <{name}>")
            if not inner[1]:
                depth += 1
            i = inner[0]
        else:
            depth -= 1
            i = next_close.end()
    return i


def split_inline(text: str) -> list[Node]:
    """Split block text into text, inline code, JSX and expression spans."""
    spans: list[Node] = []
    buffer: list[str] = []

    def flush() -> None:
        if buffer:
            spans.append(Node(kind="text", source="".join(buffer)))
            buffer.clear()

    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            buffer.append(text[i : i + 2])
            i += 2
            continue
        if ch == "`":
            run = len(text[i:]) - len(text[i:].lstrip("`"))
            fence = "`" * run
            close = text.find(fence, i + run)
            if close != -1:
                flush()
                spans.append(Node(kind="inlineCode", source=text[i : close + run]))
                i = close + run
                continue
            buffer.append(fence)
            i += run
            continue
        if ch == "{":
            end = _match_braces(text, i)
            if end is None:
                raise ParseError("Unclosed expression '{'")
            flush()
            spans.append(Node(kind="mdxTextExpression", source=text[i:end]))
            i = end
            continue
        if ch == "<":
            end = _match_jsx(text, i)
            if end is not None:
                flush()
                spans.append(Node(kind="mdxJsxTextElement", source=text[i:end]))
                i = end
                continue
        buffer.append(ch)
        i += 1

    flush()
    return spans


# Block scanning


def _flow_end(lines: list[str], start: int, matcher: Callable[[str, int], int | None]) -> int | None:
    """Return the exclusive end line of a flow construct starting at ``lines[start]``.

    Returns None when the construct is followed by other text on its last
    line, which makes it inline content of a paragraph instead.
    """
    text = "\n".join(lines[start:])
    pos = len(lines[start]) - len(lines[start].lstrip())
    end = matcher(text, pos)
    if end is None:
        return None
    rest = text[end:]
    tail, _, _ = rest.partition("\n")
    if tail.strip():
        return None
    return start + text.count("\n", 0, end) + 1


def _esm_end(lines: list[str], start: int) -> int:
    """Return the exclusive end line of an ESM block.

    The block ends at the first blank line where every bracket opened so far
    is closed, so object literals may contain blank lines.

    Raises:
        ParseError: If the document ends with a bracket or string still open.
    """
    end = start + 1
    while end < len(lines):
        if not lines[end].strip() and _brackets_balanced("\n".join(lines[start:end])):
            return end
        end += 1
    if not _brackets_balanced("\n".join(lines[start:end])):
        raise ParseError(f"Unterminated import/export at line {start + 1}")
    return end


def _brackets_balanced(text: str) -> bool:
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "\"'`":
            end = _skip_string(text, i)
            if end is None:
                return False
            i = end
            continue
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        i += 1
    return depth <= 0


def _markdown_nodes(lines: list[str], start: int, end: int, mdx: bool) -> list[Node]:
    """Parse ``lines[start:end]`` with markdown-it-py into top-level nodes."""
    text = "\n".join(lines[start:end])
    if not text.strip():
        return []
    root = SyntaxTreeNode(_md.parse(text))
    nodes: list[Node] = []
    for child in root.children:
        if child.map is None:
            continue
        first, last = child.map
        # markdown-it counts trailing blank lines into some blocks
        while last > first + 1 and not lines[start + last - 1].strip():
            last -= 1
        source = "\n".join(lines[start + first : start + last])
        node = Node(kind=child.type, source=source, line=start + first, end_line=start + last)
        if mdx and node.kind in INLINE_CONTAINERS:
            node.children = split_inline(source)
        nodes.append(node)
    return nodes


def scan_blocks(lines: list[str], mdx: bool = True) -> list[Node]:
    """Split document lines into top-level nodes in document order."""
    nodes: list[Node] = []
    i = 0

    if lines and lines[0].strip() == "---":
        for j in range(1, len(lines)):
            if lines[j].strip() == "---":
                nodes.append(
                    Node(kind="frontmatter", source="\n".join(lines[: j + 1]), line=0, end_line=j + 1)
                )
                i = j + 1
                break

    run_start = i
    fence: str | None = None
    at_block_start = True

    while i < len(lines):
        line = lines[i]

        if fence is not None:
            stripped = line.strip()
            if stripped.startswith(fence) and set(stripped) == {fence[0]}:
                fence = None
                at_block_start = True
            i += 1
            continue

        fence_match = FENCE_RE.match(line)
        if fence_match:
            fence = fence_match.group(1)
            i += 1
            continue

        if not line.strip():
            at_block_start = True
            i += 1
            continue

        flow: tuple[str, int] | None = None
        if mdx and at_block_start:
            if ESM_RE.match(line):
                flow = ("mdxjsEsm", _esm_end(lines, i))
            elif JSX_FLOW_RE.match(line):
                end = _flow_end(lines, i, _match_jsx)
                if end is not None:
                    flow = ("mdxJsxFlowElement", end)
            elif EXPRESSION_FLOW_RE.match(line):
                end = _flow_end(lines, i, _match_braces)
                if end is None and _match_braces("\n".join(lines[i:]), line.index("{")) is None:
                    raise ParseError(f"Unclosed expression at line {i + 1}")
                if end is not None:
                    flow = ("mdxFlowExpression", end)

        if flow is not None:
            kind, end = flow
            nodes.extend(_markdown_nodes(lines, run_start, i, mdx))
            nodes.append(Node(kind=kind, source="\n".join(lines[i:end]), line=i, end_line=end))
            i = end
            run_start = end
            at_block_start = True
            continue

        at_block_start = bool(ATX_HEADING_RE.match(line))
        i += 1

    nodes.extend(_markdown_nodes(lines, run_start, len(lines), mdx))
    return nodes


# Metadata extraction


class _LiteralParser:
    """Reads a JS object literal, keeping only literal-valued properties."""

    _ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}

    def __init__(self, text: str, pos: int = 0):
        self.text = text
        self.pos = pos

    def _peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _skip_ws(self) -> None:
        while self.pos < len(self.text):
            if self.text[self.pos].isspace():
                self.pos += 1
            elif self.text.startswith("//", self.pos):
                newline = self.text.find("\n", self.pos)
                self.pos = len(self.text) if newline == -1 else newline
            elif self.text.startswith("/*", self.pos):
                close = self.text.find("*/", self.pos + 2)
                if close == -1:
                    raise ParseError("Unterminated comment in meta export")
                self.pos = close + 2
            else:
                break

    def _expect(self, ch: str) -> None:
        self._skip_ws()
        if self._peek() != ch:
            raise ParseError(f"Expected '{ch}' at offset {self.pos} in meta export")
        self.pos += 1

    def _read_string(self) -> str:
        quote = self.text[self.pos]
        end = _skip_string(self.text, self.pos)
        if end is None:
            raise ParseError("Unterminated string in meta export")
        raw = self.text[self.pos + 1 : end - 1]
        self.pos = end
        if quote == "`":
            return raw
        out: list[str] = []
        i = 0
        while i < len(raw):
            ch = raw[i]
            if ch == "\\" and i + 1 < len(raw):
                nxt = raw[i + 1]
                if nxt == "u" and re.fullmatch(r"[0-9a-fA-F]{4}", raw[i + 2 : i + 6]):
                    out.append(chr(int(raw[i + 2 : i + 6], 16)))
                    i += 6
                    continue
                out.append(self._ESCAPES.get(nxt, nxt))
                i += 2
                continue
            out.append(ch)
            i += 1
        return "".join(out)

    def _skip_expression(self) -> None:
        """Skip a non-literal value up to the next top-level ``,``, ``}`` or ``]``."""
        depth = 0
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch in "\"'`":
                end = _skip_string(self.text, self.pos)
                if end is None:
                    raise ParseError("Unterminated string in meta export")
                self.pos = end
                continue
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                if depth == 0:
                    return
                depth -= 1
            elif ch == "," and depth == 0:
                return
            self.pos += 1
        raise ParseError("Unterminated meta export")

    def _at_value_end(self) -> bool:
        self._skip_ws()
        return self._peek() in (",", "}", "]")

    def parse_value(self) -> tuple[bool, Any]:
        """Parse one value. Returns (is_literal, value)."""
        self._skip_ws()
        ch = self._peek()
        start = self.pos
        value: Any = None
        literal = True

        if ch in "\"'":
            value = self._read_string()
        elif ch == "`":
            raw_end = _skip_string(self.text, self.pos)
            if raw_end is None:
                raise ParseError("Unterminated template in meta export")
            literal = "${" not in self.text[self.pos : raw_end]
            value = self._read_string()
        elif ch == "{":
            value = self.parse_object()
        elif ch == "[":
            literal, value = self.parse_array()
        else:
            number = NUMBER_RE.match(self.text, self.pos)
            word = IDENTIFIER_RE.match(self.text, self.pos)
            if number:
                self.pos = number.end()
                text = number.group(0)
                value = float(text) if any(c in text for c in ".eE") else int(text)
            elif word and word.group(0) in ("true", "false", "null"):
                self.pos = word.end()
                value = {"true": True, "false": False, "null": None}[word.group(0)]
            else:
                literal = False

        if literal and self._at_value_end():
            return True, value
        # Computed value such as `1 + x` or `fn()`: drop it
        self.pos = start
        self._skip_expression()
        return False, None

    def parse_array(self) -> tuple[bool, list[Any]]:
        self._expect("[")
        items: list[Any] = []
        literal = True
        while True:
            self._skip_ws()
            if self._peek() == "]":
                self.pos += 1
                return literal, items
            if self.text.startswith("...", self.pos):
                literal = False
            ok, value = self.parse_value()
            literal = literal and ok
            items.append(value)
            self._skip_ws()
            if self._peek() == ",":
                self.pos += 1
            elif self._peek() != "]":
                raise ParseError(f"Malformed array at offset {self.pos} in meta export")

    def parse_object(self) -> dict[str, Any]:
        self._expect("{")
        result: dict[str, Any] = {}
        while True:
            self._skip_ws()
            ch = self._peek()
            if ch == "}":
                self.pos += 1
                return result
            if not ch:
                raise ParseError("Unterminated object in meta export")

            key: str | None = None
            if ch in "\"'":
                key = self._read_string()
            elif self.text.startswith("...", self.pos):
                self._skip_expression()
            else:
                word = IDENTIFIER_RE.match(self.text, self.pos) or NUMBER_RE.match(self.text, self.pos)
                if word is None:
                    # Computed key like [name]
                    self._skip_expression()
                else:
                    key = word.group(0)
                    self.pos = word.end()

            if key is not None:
                self._skip_ws()
                if self._peek() == ":":
                    self.pos += 1
                    ok, value = self.parse_value()
                    if ok:
                        result[key] = value
                else:
                    # Shorthand or method property, never a literal
                    self._skip_expression()

            self._skip_ws()
            if self._peek() == ",":
                self.pos += 1
            elif self._peek() != "}":
                raise ParseError(f"Malformed object at offset {self.pos} in meta export")


def parse_meta_export(source: str) -> dict[str, Any] | None:
    """Extract the literal properties of ``export const meta = {...}``.

    Returns None if ``source`` is not a meta export or its value is not an
    object literal.
    """
    match = META_EXPORT_RE.match(source)
    if not match:
        return None
    parser = _LiteralParser(source, match.end())
    parser._skip_ws()
    if parser._peek() != "{":
        return None
    return parser.parse_object()


def _json_safe(value: Any) -> tuple[bool, Any]:
    """Keep JSON literals from a YAML value; dates become ISO strings."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return True, value
    if isinstance(value, (date, datetime)):
        return True, value.isoformat()
    if isinstance(value, list):
        items = [_json_safe(item) for item in value]
        if all(ok for ok, _ in items):
            return True, [item for _, item in items]
        return False, None
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            ok, safe = _json_safe(item)
            if ok:
                result[str(key)] = safe
        return True, result
    return False, None


def parse_frontmatter_meta(source: str, file_path: str = "") -> dict[str, Any] | None:
    """Parse a ``---`` delimited YAML block into a JSON-safe mapping."""
    body = source.strip()
    if body.startswith("---"):
        body = body[3:]
    if body.endswith("---"):
        body = body[:-3]
    try:
        raw = yaml.safe_load(body)
    except yaml.YAMLError as e:
        logger.debug("Invalid YAML frontmatter in %s: %s", file_path, e)
        return None
    if not isinstance(raw, dict):
        return None
    _, meta = _json_safe(raw)
    return meta


def extract_meta(nodes: list[Node], file_path: str = "") -> dict[str, Any] | None:
    """Return the document's metadata record, if any.

    The first ``export const meta`` declaration wins; frontmatter is only used
    when no such export exists.
    """
    for node in nodes:
        if node.kind == "mdxjsEsm" and META_EXPORT_RE.match(node.source):
            return parse_meta_export(node.source)
    for node in nodes:
        if node.kind == "frontmatter":
            return parse_frontmatter_meta(node.source, file_path)
    return None


def heading_plain_text(source: str) -> str:
    """Return the plain text of a heading node's source, markup stripped."""
    lines = source.split("\n")
    if ATX_HEADING_RE.match(lines[0]):
        text = re.sub(r"^ {0,3}#{1,6}\s*", "", lines[0])
        text = re.sub(r"(^|\s+)#+\s*$", "", text)
    else:
        # Setext: everything but the underline
        text = " ".join(line.strip() for line in lines[:-1])

    parts: list[str] = []
    for token in _md.parseInline(text.strip()):
        for child in token.children or []:
            if child.type in ("text", "code_inline"):
                parts.append(child.content)
            elif child.type in ("softbreak", "hardbreak"):
                parts.append(" ")
    return "".join(parts).strip()


def parse_document(content: str, file_path: str = "", mdx: bool = True) -> ParsedDocument:
    """
    Parse a markdown/MDX document into its metadata and pruned prose nodes.

    Args:
        content: The full document text
        file_path: Path used in log and error messages
        mdx: Recognize MDX syntax (ESM, JSX, expressions)

    Returns:
        ParsedDocument with the metadata record and the prose nodes.

    Raises:
        ParseError: If MDX constructs are malformed.
    """
    lines = normalize_newlines(content).split("\n")
    nodes = scan_blocks(lines, mdx=mdx)
    meta = extract_meta(nodes, file_path)

    pruned = [node for node in filter_nodes(nodes, is_prose) if node.text().strip()]
    return ParsedDocument(meta=meta, nodes=pruned)
