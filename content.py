import re
from dataclasses import dataclass, field
from pathlib import Path

import markdown
from markupsafe import Markup

from toc import anchor_headings, build_toc, render_toc

HOSTING_HINT = "请确保文档文件存在于 docs 目录中，并通过本服务（而不是直接打开 HTML 文件）访问页面"


class LoadError(Exception):

    def __init__(self, path: str, status: int, reason: str):
        super().__init__(f"{path}: {status} {reason}")
        self.path = path
        self.status = status
        self.reason = reason


class EmptyContentError(LoadError):

    def __init__(self, path: str):
        super().__init__(path, 204, "文档内容为空")


class DocumentStore:
    """Read-only view of the markdown files under ``root``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve(self, rel_path: str) -> Path:
        if not rel_path:
            raise LoadError(rel_path, 400, "Empty path")
        try:
            candidate = (self.root / rel_path).resolve()
            candidate.relative_to(self.root.resolve())
        except (ValueError, OSError):
            raise LoadError(rel_path, 403, "Forbidden")
        return candidate

    def read(self, rel_path: str) -> str:
        fpath = self.resolve(rel_path)
        if not fpath.is_file():
            raise LoadError(rel_path, 404, "Not Found")
        try:
            return fpath.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise LoadError(rel_path, 415, f"Not UTF-8 text ({e.reason})")
        except OSError as e:
            raise LoadError(rel_path, 500, e.strerror or str(e))


def auto_link_urls(text: str) -> str:
    return re.sub(
        r'(?<!\]\()(?<!\()(?<!<)(https?://[^\s<>\)\]]+)',
        lambda m: f'[{m.group(1)}]({m.group(1)})',
        text,
    )


def render_markdown(text: str) -> str:
    text = auto_link_urls(text)
    extensions = ["fenced_code", "tables", "sane_lists"]
    try:
        import pygments
        extensions.append("codehilite")
    except ImportError:
        pass
    html = markdown.markdown(text, extensions=extensions)
    html = re.sub(
        r'<a href="(https?://[^"]+)"',
        r'<a href="\1" target="_blank" rel="noopener noreferrer"',
        html,
    )
    return html


@dataclass
class RenderedArticle:
    path: str
    html: str
    toc_html: str
    headings: list = field(default_factory=list)


def load_markdown(store: DocumentStore, path: str, strict_empty: bool = True,
                  anchor_style: str = "position") -> RenderedArticle:
    text = store.read(path)
    if strict_empty and not text.strip():
        raise EmptyContentError(path)
    html, headings = anchor_headings(render_markdown(text), anchor_style)
    toc_html = render_toc(build_toc(headings))
    return RenderedArticle(path=path, html=html, toc_html=str(toc_html), headings=headings)


def error_panel(path: str, reason: str, hints: bool = True) -> str:
    parts = [
        Markup('<div class="load-error">'),
        Markup("<h2>文档加载失败</h2>"),
        Markup('<p class="error-path">无法加载文件: {}</p>').format(path),
        Markup('<p class="error-reason">{}</p>').format(reason),
    ]
    if hints:
        parts.append(Markup('<p class="error-hint">{}</p>').format(HOSTING_HINT))
    parts.append(Markup("</div>"))
    return str(Markup("").join(parts))


def loading_panel(path: str = "") -> str:
    return str(Markup('<div class="loading" data-path="{}">正在加载...</div>').format(path))


def describe(error: LoadError) -> str:
    return f"{error.status} {error.reason}"
