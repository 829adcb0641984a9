from __future__ import annotations

import json
from pathlib import Path

import pytest

from catalog import DEFAULT_CATALOG, ArticleRecord, Catalog, CatalogError, load_catalog


def test_default_catalog_order() -> None:
    assert DEFAULT_CATALOG.keys() == ["cpp", "os", "network"]
    assert DEFAULT_CATALOG.title("os") == "操作系统"
    assert [r.file for r in DEFAULT_CATALOG.articles("cpp")] == [
        "cpp/cpp-basic.md",
        "cpp/oop.md",
        "cpp/stl.md",
        "cpp/smart-pointer.md",
    ]


def test_flatten_follows_declaration_order() -> None:
    pairs = list(DEFAULT_CATALOG.flatten())
    assert len(pairs) == 10
    assert pairs[0] == ("cpp", ArticleRecord("C++ 基础语法", "cpp/cpp-basic.md"))
    assert [key for key, _ in pairs] == ["cpp"] * 4 + ["os"] * 3 + ["network"] * 3


def test_find_and_unknown_key() -> None:
    assert DEFAULT_CATALOG.find("network/http.md") == "network"
    assert DEFAULT_CATALOG.find("nope.md") is None
    assert "rust" not in DEFAULT_CATALOG
    with pytest.raises(KeyError):
        DEFAULT_CATALOG.articles("rust")


def test_duplicate_category_rejected() -> None:
    with pytest.raises(CatalogError):
        Catalog([("a", "A", []), ("a", "A again", [])])


def test_load_catalog_from_json(tmp_path: Path) -> None:
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({
        "categories": [
            {"key": "py", "title": "Python", "articles": [{"title": "装饰器", "file": "py/decorators.md"}]},
            {"key": "go", "articles": []},
        ]
    }, ensure_ascii=False), encoding="utf-8")
    catalog = load_catalog(path)
    assert catalog.keys() == ["py", "go"]
    assert catalog.title("go") == "go"
    assert catalog.articles("py") == (ArticleRecord("装饰器", "py/decorators.md"),)
    assert catalog.to_dict()["categories"][0]["articles"][0]["file"] == "py/decorators.md"


def test_load_catalog_missing_file_uses_default(tmp_path: Path) -> None:
    assert load_catalog(tmp_path / "absent.json") is DEFAULT_CATALOG
    assert load_catalog(None) is DEFAULT_CATALOG


def test_load_catalog_malformed(tmp_path: Path) -> None:
    bad_json = tmp_path / "bad.json"
    bad_json.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogError):
        load_catalog(bad_json)

    missing_key = tmp_path / "missing.json"
    missing_key.write_text(json.dumps({"categories": [{"title": "no key"}]}), encoding="utf-8")
    with pytest.raises(CatalogError):
        load_catalog(missing_key)
