import json
from dataclasses import dataclass
from pathlib import Path


class CatalogError(Exception):
    pass


@dataclass(frozen=True)
class ArticleRecord:
    title: str
    file: str


class Catalog:
    """Ordered category -> articles mapping. Declaration order is display order."""

    def __init__(self, categories: list[tuple[str, str, list[ArticleRecord]]]):
        self._titles: dict[str, str] = {}
        self._articles: dict[str, tuple[ArticleRecord, ...]] = {}
        for key, title, records in categories:
            if key in self._articles:
                raise CatalogError(f"Duplicate category: {key}")
            self._titles[key] = title
            self._articles[key] = tuple(records)

    def __contains__(self, key) -> bool:
        return key in self._articles

    def __iter__(self):
        return iter(self._articles)

    def __len__(self) -> int:
        return len(self._articles)

    def keys(self) -> list[str]:
        return list(self._articles)

    def title(self, key: str) -> str:
        return self._titles[key]

    def articles(self, key: str) -> tuple[ArticleRecord, ...]:
        return self._articles[key]

    def flatten(self):
        for key, records in self._articles.items():
            for record in records:
                yield key, record

    def find(self, file: str) -> str | None:
        for key, record in self.flatten():
            if record.file == file:
                return key
        return None

    def to_dict(self) -> dict:
        return {"categories": [
            {"key": key, "title": self._titles[key],
             "articles": [{"title": r.title, "file": r.file} for r in records]}
            for key, records in self._articles.items()
        ]}


DEFAULT_CATALOG = Catalog([
    ("cpp", "C++", [
        ArticleRecord("C++ 基础语法", "cpp/cpp-basic.md"),
        ArticleRecord("面向对象编程", "cpp/oop.md"),
        ArticleRecord("STL 容器", "cpp/stl.md"),
        ArticleRecord("智能指针", "cpp/smart-pointer.md"),
    ]),
    ("os", "操作系统", [
        ArticleRecord("进程与线程", "os/process-thread.md"),
        ArticleRecord("内存管理", "os/memory.md"),
        ArticleRecord("文件系统", "os/filesystem.md"),
    ]),
    ("network", "计算机网络", [
        ArticleRecord("TCP/IP 协议", "network/tcp-ip.md"),
        ArticleRecord("HTTP 协议", "network/http.md"),
        ArticleRecord("网络安全", "network/security.md"),
    ]),
])


def catalog_from_dict(data: dict) -> Catalog:
    try:
        categories = [
            (str(cat["key"]), str(cat.get("title") or cat["key"]),
             [ArticleRecord(str(a["title"]), str(a["file"])) for a in cat.get("articles", [])])
            for cat in data["categories"]
        ]
    except (KeyError, TypeError) as e:
        raise CatalogError(f"Malformed catalog: {e!r}") from e
    return Catalog(categories)


def load_catalog(path: Path | None) -> Catalog:
    if path is None or not path.is_file():
        return DEFAULT_CATALOG
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise CatalogError(f"Could not read {path.name}: {e}") from e
    return catalog_from_dict(data)
