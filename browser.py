import logging
import threading
from dataclasses import asdict, dataclass, replace

from catalog import ArticleRecord, Catalog
from content import DocumentStore, LoadError, describe, error_panel, load_markdown, loading_panel

log = logging.getLogger(__name__)

NO_RESULTS = "未找到相关文章"


class StaleCommand(Exception):

    def __init__(self, seq: int, last_seq: int):
        super().__init__(f"command {seq} arrived after {last_seq}")
        self.seq = seq
        self.last_seq = last_seq


@dataclass(frozen=True)
class SelectCategory:
    key: str


@dataclass(frozen=True)
class Search:
    query: str


@dataclass(frozen=True)
class ActivateArticle:
    file: str
    category: str | None = None


@dataclass(frozen=True)
class Escape:
    pass


@dataclass(frozen=True)
class SessionState:
    current_category: str
    current_article: str | None = None
    is_searching: bool = False
    query: str = ""
    # list entry shown as active; may differ from current_article after a category switch
    active_file: str | None = None


@dataclass(frozen=True)
class ListEntry:
    title: str
    file: str
    category: str
    category_title: str
    active: bool = False


@dataclass(frozen=True)
class ArticleListView:
    title: str
    entries: tuple[ListEntry, ...]
    searching: bool = False
    empty_message: str | None = None


@dataclass(frozen=True)
class RenderInstruction:
    article_list: ArticleListView
    nav_category: str
    load: str | None = None
    clear_search: bool = False
    blur_search: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def category_view(catalog: Catalog, key: str, active_file: str | None) -> ArticleListView:
    title = catalog.title(key)
    entries = tuple(
        ListEntry(r.title, r.file, key, title, active=(r.file == active_file))
        for r in catalog.articles(key)
    )
    return ArticleListView(title=title, entries=entries)


def search_catalog(catalog: Catalog, query: str) -> list[tuple[str, ArticleRecord]]:
    needle = query.casefold()
    return [(key, r) for key, r in catalog.flatten() if needle in r.title.casefold()]


def search_view(catalog: Catalog, query: str, active_file: str | None) -> ArticleListView:
    entries = tuple(
        ListEntry(r.title, r.file, key, catalog.title(key), active=(r.file == active_file))
        for key, r in search_catalog(catalog, query)
    )
    return ArticleListView(
        title=f"搜索结果: {query}",
        entries=entries,
        searching=True,
        empty_message=None if entries else NO_RESULTS,
    )


def _show_category(catalog: Catalog, state: SessionState, key: str, **flags):
    records = catalog.articles(key)
    first = records[0].file if records else None
    state = replace(state, current_category=key, is_searching=False, query="", active_file=first)
    return state, RenderInstruction(
        article_list=category_view(catalog, key, first),
        nav_category=key,
        clear_search=True,
        **flags,
    )


def reduce(catalog: Catalog, state: SessionState, command) -> tuple[SessionState, RenderInstruction]:
    """Apply one UI command; returns the next state and what to repaint.

    Unknown category keys propagate as KeyError.
    """
    if isinstance(command, SelectCategory):
        return _show_category(catalog, state, command.key)

    if isinstance(command, Escape):
        return _show_category(catalog, state, state.current_category, blur_search=True)

    if isinstance(command, Search):
        query = command.query.strip()
        if not query:
            return _show_category(catalog, state, state.current_category)
        state = replace(state, is_searching=True, query=query)
        return state, RenderInstruction(
            article_list=search_view(catalog, query, state.active_file),
            nav_category=state.current_category,
        )

    if isinstance(command, ActivateArticle):
        key = command.category or catalog.find(command.file)
        if key is None or command.file not in {r.file for r in catalog.articles(key)}:
            raise KeyError(command.file)
        state = replace(state, current_category=key, current_article=command.file,
                        active_file=command.file)
        if state.is_searching:
            view = search_view(catalog, state.query, command.file)
        else:
            view = category_view(catalog, key, command.file)
        return state, RenderInstruction(article_list=view, nav_category=key, load=command.file)

    raise TypeError(f"Unknown command: {command!r}")


@dataclass
class LoadResult:
    token: int
    path: str
    ok: bool
    html: str
    toc_html: str | None = None
    status: int | None = None
    reason: str | None = None
    stale: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class ContentLoader:
    """Fetch-and-render with a request token per load.

    Only the most recently started load may update the panels; the TOC is
    replaced on successful renders only.
    """

    def __init__(self, store: DocumentStore, strict_empty: bool = True,
                 anchor_style: str = "position", hints: bool = True):
        self.store = store
        self.strict_empty = strict_empty
        self.anchor_style = anchor_style
        self.hints = hints
        self.content_html = ""
        self.toc_html = ""
        self.loaded_path: str | None = None
        self._token = 0
        self._lock = threading.Lock()

    @property
    def token(self) -> int:
        return self._token

    def begin(self, path: str) -> int:
        with self._lock:
            self._token += 1
            self.content_html = loading_panel(path)
            return self._token

    def complete(self, token: int, path: str) -> LoadResult:
        try:
            article = load_markdown(self.store, path, strict_empty=self.strict_empty,
                                    anchor_style=self.anchor_style)
        except LoadError as e:
            log.info("Failed to load %s: %s", path, describe(e))
            result = LoadResult(token, path, ok=False,
                                html=error_panel(path, describe(e), hints=self.hints),
                                status=e.status, reason=e.reason)
        else:
            result = LoadResult(token, path, ok=True, html=article.html, toc_html=article.toc_html)

        with self._lock:
            if token != self._token:
                log.debug("Discarding stale load of %s (token %d, current %d)", path, token, self._token)
                result.stale = True
                return result
            self.content_html = result.html
            if result.ok:
                self.toc_html = result.toc_html
                self.loaded_path = path
        return result

    def load(self, path: str) -> LoadResult:
        return self.complete(self.begin(path), path)


class DocBrowser:
    """Owns one visitor's session state and content panels."""

    def __init__(self, catalog: Catalog, loader: ContentLoader,
                 default_category: str | None = None, default_article: str | None = None):
        self.catalog = catalog
        self.loader = loader
        self.default_category = default_category or catalog.keys()[0]
        self.default_article = default_article
        self.state = SessionState(current_category=self.default_category)
        self.last_seq = 0
        self._lock = threading.Lock()

    def dispatch(self, command, seq: int | None = None) -> RenderInstruction:
        """Apply ``command``. A ``seq`` not newer than the last applied one raises StaleCommand."""
        with self._lock:
            if seq is not None and seq <= self.last_seq:
                raise StaleCommand(seq, self.last_seq)
            self.state, instruction = reduce(self.catalog, self.state, command)
            if seq is not None:
                self.last_seq = seq
        return instruction

    def select_category(self, key: str) -> RenderInstruction:
        return self.dispatch(SelectCategory(key))

    def search(self, query: str) -> RenderInstruction:
        return self.dispatch(Search(query))

    def activate_article(self, file: str, category: str | None = None) -> RenderInstruction:
        return self.dispatch(ActivateArticle(file, category))

    def escape(self) -> RenderInstruction:
        return self.dispatch(Escape())

    def load(self, path: str) -> LoadResult:
        return self.loader.load(path)

    def bootstrap(self) -> RenderInstruction:
        # a fresh page numbers its commands from 1 again
        with self._lock:
            self.last_seq = 0
        instruction = self.select_category(self.default_category)
        records = self.catalog.articles(self.default_category)
        article = self.default_article or (records[0].file if records else None)
        if article is None:
            return instruction
        with self._lock:
            self.state = replace(self.state, current_article=article)
        return replace(instruction, load=article)
