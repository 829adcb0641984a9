import html as _html
import re

from markdown.extensions.toc import slugify_unicode
from markupsafe import Markup

HEADING_RE = re.compile(r"<h([23])(\s[^>]*)?>(.*?)</h\1>", re.IGNORECASE | re.DOTALL)
_ID_ATTR_RE = re.compile(r'\s+id="[^"]*"', re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")

NO_CONTENTS = Markup('<p class="toc-empty">暂无目录</p>')
ANCHOR_STYLES = ("position", "slug")


def heading_text(inner_html: str) -> str:
    return _html.unescape(_TAG_RE.sub("", inner_html)).strip()


def anchor_headings(html: str, style: str = "position") -> tuple[str, list[dict]]:
    """Give every h2/h3 in ``html`` a unique id.

    Returns the rewritten markup and the headings in document order as
    ``{"level", "text", "id"}`` dicts. ``position`` ids only hold for this
    render; ``slug`` ids follow the heading text.
    """
    if style not in ANCHOR_STYLES:
        raise ValueError(f"Unknown anchor style: {style}")
    headings: list[dict] = []
    used: set[str] = set()

    def replace(m):
        level = int(m.group(1))
        attrs = _ID_ATTR_RE.sub("", m.group(2) or "")
        text = heading_text(m.group(3))
        if style == "slug":
            base = slugify_unicode(text, "-") or "heading"
            anchor = base
            n = 1
            while anchor in used:
                anchor = f"{base}_{n}"
                n += 1
        else:
            anchor = f"heading-{len(headings)}"
        used.add(anchor)
        headings.append({"level": level, "text": text, "id": anchor})
        return f'<h{level} id="{anchor}"{attrs}>{m.group(3)}</h{level}>'

    return HEADING_RE.sub(replace, html), headings


def build_toc(headings: list[dict]) -> list[dict]:
    roots: list[dict] = []
    stack: list[dict] = []
    for h in headings:
        entry = {"id": h["id"], "text": h["text"], "level": h["level"], "children": []}
        # close levels until the open entry is shallower than this heading
        while stack and stack[-1]["level"] >= h["level"]:
            stack.pop()
        if stack:
            stack[-1]["children"].append(entry)
        else:
            roots.append(entry)
        stack.append(entry)
    return roots


def render_toc(entries: list[dict]) -> Markup:
    if not entries:
        return NO_CONTENTS

    def render(items):
        parts = [Markup("<ul>")]
        for item in items:
            parts.append(Markup('<li><a href="#{}">{}</a>').format(item["id"], item["text"]))
            if item["children"]:
                parts.append(render(item["children"]))
            parts.append(Markup("</li>"))
        parts.append(Markup("</ul>"))
        return Markup("").join(parts)

    return render(entries)
