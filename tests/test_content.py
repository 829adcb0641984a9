from __future__ import annotations

from pathlib import Path

import pytest

from content import (
    DocumentStore,
    EmptyContentError,
    LoadError,
    error_panel,
    load_markdown,
    loading_panel,
    render_markdown,
)
from toc import NO_CONTENTS


def test_read_missing_file(store: DocumentStore) -> None:
    with pytest.raises(LoadError) as exc:
        store.read("cpp/missing.md")
    assert exc.value.status == 404
    assert exc.value.path == "cpp/missing.md"


def test_read_outside_root_is_forbidden(store: DocumentStore, docs: Path) -> None:
    (docs.parent / "secret.md").write_text("secret", encoding="utf-8")
    with pytest.raises(LoadError) as exc:
        store.read("../secret.md")
    assert exc.value.status == 403


def test_load_markdown_builds_toc(store: DocumentStore) -> None:
    article = load_markdown(store, "cpp/cpp-basic.md")
    assert article.path == "cpp/cpp-basic.md"
    assert [h["level"] for h in article.headings] == [2, 3, 3, 2]
    assert '<h2 id="heading-0">变量</h2>' in article.html
    assert "<h1>基础</h1>" in article.html
    assert article.toc_html.count('href="#heading-') == 4


def test_load_markdown_without_headings(store: DocumentStore) -> None:
    article = load_markdown(store, "os/memory.md")
    assert article.headings == []
    assert article.toc_html == str(NO_CONTENTS)


def test_whitespace_only_content(store: DocumentStore) -> None:
    with pytest.raises(EmptyContentError) as exc:
        load_markdown(store, "os/filesystem.md")
    assert isinstance(exc.value, LoadError)
    assert exc.value.path == "os/filesystem.md"

    lenient = load_markdown(store, "os/filesystem.md", strict_empty=False)
    assert lenient.headings == []
    assert lenient.toc_html == str(NO_CONTENTS)


def test_render_markdown_links_open_in_new_tab() -> None:
    html = render_markdown("See https://example.com/docs for more.")
    assert '<a href="https://example.com/docs" target="_blank" rel="noopener noreferrer">' in html


def test_render_markdown_tables_and_code() -> None:
    html = render_markdown("| a | b |\n|---|---|\n| 1 | 2 |\n\n```\nhello\n```\n")
    assert "<table>" in html
    assert "<pre" in html
    assert "hello" in html


def test_error_panel_names_path_and_reason() -> None:
    panel = error_panel("cpp/<missing>.md", "404 Not Found")
    assert "文档加载失败" in panel
    assert "无法加载文件: cpp/&lt;missing&gt;.md" in panel
    assert "404 Not Found" in panel
    assert "error-hint" in panel
    assert "error-hint" not in error_panel("cpp/x.md", "404 Not Found", hints=False)


def test_loading_panel() -> None:
    assert 'data-path="os/memory.md"' in loading_panel("os/memory.md")
