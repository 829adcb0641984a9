from __future__ import annotations

from pathlib import Path

import pytest

from content import DocumentStore


def write_doc(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def docs(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    write_doc(root, "cpp/cpp-basic.md", "# 基础\n\n## 变量\n\n### 类型\n\n### 引用\n\n## 控制流\n")
    write_doc(root, "cpp/smart-pointer.md", "# 智能指针\n\n## unique_ptr\n\n## shared_ptr\n")
    write_doc(root, "os/memory.md", "# 内存管理\n\n没有小节。\n")
    write_doc(root, "os/filesystem.md", "   \n\n")
    return root


@pytest.fixture
def store(docs: Path) -> DocumentStore:
    return DocumentStore(docs)
