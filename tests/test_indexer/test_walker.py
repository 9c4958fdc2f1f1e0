"""Tests for the file walker."""

from pathlib import Path

import pytest

from docsync.indexer.walker import FileInfo, compute_hash, walk_docs_root


class TestComputeHash:
    def test_computes_sha256(self):
        content = b"hello world"
        result = compute_hash(content)
        assert result == "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"

    def test_different_content_different_hash(self):
        assert compute_hash(b"foo") != compute_hash(b"bar")

    def test_single_byte_changes_hash(self):
        assert compute_hash(b"# Title\n") != compute_hash(b"# Title\n\n")


class TestWalkDocsRoot:
    @pytest.fixture
    def docs_root(self, tmp_path: Path) -> Path:
        root = tmp_path / "docs"
        (root / "guide" / "advanced").mkdir(parents=True)
        (root / "guide.mdx").write_text("# Guide")
        (root / "guide" / "usage.mdx").write_text("# Usage")
        (root / "guide" / "advanced.mdx").write_text("# Advanced")
        (root / "guide" / "advanced" / "hooks.mdx").write_text("# Hooks")
        (root / "faq.md").write_text("# FAQ")
        return root

    def test_returns_sorted_relative_paths(self, docs_root: Path):
        files = walk_docs_root(docs_root)
        assert [f.relative_path for f in files] == [
            "faq.md",
            "guide.mdx",
            "guide/advanced.mdx",
            "guide/advanced/hooks.mdx",
            "guide/usage.mdx",
        ]

    def test_assigns_parents_from_sibling_files(self, docs_root: Path):
        parents = {f.relative_path: f.parent_path for f in walk_docs_root(docs_root)}
        assert parents["faq.md"] is None
        assert parents["guide.mdx"] is None
        assert parents["guide/usage.mdx"] == "guide.mdx"
        assert parents["guide/advanced.mdx"] == "guide.mdx"

    def test_deeper_pairing_overrides_inherited_parent(self, docs_root: Path):
        parents = {f.relative_path: f.parent_path for f in walk_docs_root(docs_root)}
        assert parents["guide/advanced/hooks.mdx"] == "guide/advanced.mdx"

    def test_directory_without_sibling_inherits_parent(self, docs_root: Path):
        (docs_root / "guide" / "recipes").mkdir()
        (docs_root / "guide" / "recipes" / "cache.mdx").write_text("# Cache")

        parents = {f.relative_path: f.parent_path for f in walk_docs_root(docs_root)}
        assert parents["guide/recipes/cache.mdx"] == "guide.mdx"

    def test_md_sibling_becomes_parent(self, tmp_path: Path):
        (tmp_path / "api").mkdir()
        (tmp_path / "api.md").write_text("# API")
        (tmp_path / "api" / "auth.mdx").write_text("# Auth")

        parents = {f.relative_path: f.parent_path for f in walk_docs_root(tmp_path)}
        assert parents["api/auth.mdx"] == "api.md"

    def test_mdx_sibling_wins_over_md(self, tmp_path: Path):
        (tmp_path / "api").mkdir()
        (tmp_path / "api.md").write_text("# API")
        (tmp_path / "api.mdx").write_text("# API")
        (tmp_path / "api" / "auth.mdx").write_text("# Auth")

        parents = {f.relative_path: f.parent_path for f in walk_docs_root(tmp_path)}
        assert parents["api/auth.mdx"] == "api.mdx"

    def test_directory_named_like_sibling_is_not_parent(self, tmp_path: Path):
        (tmp_path / "api").mkdir()
        (tmp_path / "api.mdx").mkdir()
        (tmp_path / "api" / "auth.mdx").write_text("# Auth")

        parents = {f.relative_path: f.parent_path for f in walk_docs_root(tmp_path)}
        assert parents == {"api/auth.mdx": None}

    def test_skips_hidden_entries(self, docs_root: Path):
        (docs_root / ".cache").mkdir()
        (docs_root / ".cache" / "stale.mdx").write_text("# Stale")
        (docs_root / "guide" / ".draft.mdx").write_text("# Draft")

        paths = [f.relative_path for f in walk_docs_root(docs_root)]
        assert not any(".cache" in p or ".draft" in p for p in paths)

    def test_file_info_has_required_fields(self, docs_root: Path):
        f = walk_docs_root(docs_root)[0]
        assert isinstance(f, FileInfo)
        assert f.path.exists()
        assert f.path == docs_root / f.relative_path

    def test_missing_root_returns_empty(self, tmp_path: Path):
        assert walk_docs_root(tmp_path / "nope") == []

    def test_empty_root_returns_empty(self, tmp_path: Path):
        assert walk_docs_root(tmp_path) == []
