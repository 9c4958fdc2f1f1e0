"""File walker for discovering documents under the docs root."""

import hashlib
from dataclasses import dataclass
from pathlib import Path

# Extensions a directory's sibling may have to become its parent document.
# Order matters: the first existing candidate wins.
PARENT_EXTENSIONS = (".mdx", ".md")


@dataclass
class FileInfo:
    """Information about a discovered file."""

    path: Path  # Filesystem path under the docs root
    relative_path: str  # Relative to the docs root, POSIX separators
    parent_path: str | None = None  # Relative path of the nearest parent document


def compute_hash(content: bytes) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content).hexdigest()


def _parent_document_for(directory: Path, names: set[str]) -> str | None:
    """Return the sibling file name pairing with ``directory``, if any."""
    for ext in PARENT_EXTENSIONS:
        candidate = directory.name + ext
        if candidate in names and directory.with_name(candidate).is_file():
            return candidate
    return None


def walk_docs_root(docs_root: Path) -> list[FileInfo]:
    """
    Walk the docs root and return every leaf file, sorted by relative path.

    A directory ``X`` with a sibling ``X.mdx`` (or ``X.md``) makes that sibling
    the parent document of every file nested under ``X``. Deeper pairings
    override shallower ones:

    <docs_root>/
    ├── guide.mdx             parent: None
    ├── guide/
    │   ├── usage.mdx         parent: guide.mdx
    │   ├── advanced.mdx      parent: guide.mdx
    │   └── advanced/
    │       └── hooks.mdx     parent: guide/advanced.mdx
    └── faq.md                parent: None
    """
    if not docs_root.is_dir():
        return []

    files: list[FileInfo] = []
    # Explicit stack of (directory, inherited parent path)
    stack: list[tuple[Path, str | None]] = [(docs_root, None)]

    while stack:
        directory, inherited_parent = stack.pop()
        entries = sorted(
            (entry for entry in directory.iterdir() if not entry.name.startswith(".")),
            key=lambda entry: entry.name,
        )
        names = {entry.name for entry in entries}

        for entry in entries:
            if entry.is_dir():
                sibling = _parent_document_for(entry, names)
                if sibling is not None:
                    next_parent = (directory / sibling).relative_to(docs_root).as_posix()
                else:
                    next_parent = inherited_parent
                stack.append((entry, next_parent))
            elif entry.is_file():
                files.append(
                    FileInfo(
                        path=entry,
                        relative_path=entry.relative_to(docs_root).as_posix(),
                        parent_path=inherited_parent,
                    )
                )

    files.sort(key=lambda f: f.relative_path)
    return files
