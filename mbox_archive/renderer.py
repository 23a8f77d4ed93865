"""Body renderer — pick a displayable part and produce sanitized HTML.

Untrusted mail must never cause code execution or a network access just
by being viewed, so executable elements are removed and every attribute
that would load an external resource is neutralized.  The wrapping
document also carries a ``default-src 'none'`` Content-Security-Policy.
"""

from __future__ import annotations

import base64
import html
from dataclasses import dataclass

import structlog
from bs4 import BeautifulSoup, Tag

from .attachments import is_attachment_part
from .mime import MimeNode

logger = structlog.get_logger()

PLACEHOLDER_TEXT = "This message has no displayable content."

_REMOVED_TAGS = [
    "script",
    "style",
    "iframe",
    "frame",
    "frameset",
    "object",
    "embed",
    "applet",
    "link",
    "base",
    "meta",
]
# Attributes whose value is fetched automatically when the element renders.
_RESOURCE_ATTRS = frozenset({"src", "srcset", "background", "poster", "dynsrc", "lowsrc", "data", "xlink:href"})
_LINK_TAGS = frozenset({"a", "area"})
_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:")
# Inline styles mentioning any of these are dropped.  A backslash can hide
# a function name behind a CSS escape such as ``\75rl(``.
_UNSAFE_STYLE_MARKERS = ("url(", "image(", "image-set(", "expression(", "@import", "\\")

_DOCUMENT_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta http-equiv="Content-Security-Policy" content="default-src 'none'; img-src data:; style-src 'unsafe-inline'">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>
body {{ font-family: system-ui, sans-serif; font-size: 15px; line-height: 1.6; color: #374151; padding: 16px; margin: 0; overflow-wrap: break-word; }}
img {{ max-width: 100%; height: auto; }}
blockquote {{ border-left: 3px solid #C4B5FD; margin: 8px 0; padding: 4px 12px; color: #6B7280; }}
pre {{ white-space: pre-wrap; font-family: inherit; }}
table {{ border-collapse: collapse; max-width: 100%; }}
.placeholder {{ color: #9CA3AF; font-style: italic; }}
</style>
</head>
<body>
{body}
</body>
</html>
"""


@dataclass
class RenderedBody:
    """A sanitized, self-contained HTML document and the kind of part it came from."""

    html: str
    source: str  # "html", "text" or "placeholder"


class BodyRenderer:
    """Render the displayable part of a decoded message."""

    def render(self, root: MimeNode) -> RenderedBody:
        html_part = _first_inline_leaf(root, "text/html")
        if html_part is not None:
            body = self.sanitize(html_part.text or "", _inline_resources(root))
            return RenderedBody(html=_DOCUMENT_TEMPLATE.format(body=body), source="html")

        text_part = _first_inline_leaf(root, "text/plain")
        if text_part is not None:
            body = f"<pre>{html.escape(text_part.text or '')}</pre>"
            return RenderedBody(html=_DOCUMENT_TEMPLATE.format(body=body), source="text")

        logger.info("render_no_displayable_part", content_type=root.content_type)
        body = f'<p class="placeholder">{html.escape(PLACEHOLDER_TEXT)}</p>'
        return RenderedBody(html=_DOCUMENT_TEMPLATE.format(body=body), source="placeholder")

    def sanitize(self, markup: str, inline_resources: dict[str, str] | None = None) -> str:
        """Strip executable content and external resource loads from HTML.

        ``inline_resources`` maps Content-IDs to ``data:`` URIs used to
        resolve ``cid:`` references.
        """
        inline_resources = inline_resources or {}
        soup = BeautifulSoup(markup, "html.parser")

        for tag in soup.find_all(_REMOVED_TAGS):
            if not tag.decomposed:
                tag.decompose()

        for tag in soup.find_all(True):
            _sanitize_attributes(tag, inline_resources)

        container = soup.body or soup
        return container.decode_contents()


def _sanitize_attributes(tag: Tag, inline_resources: dict[str, str]) -> None:
    for name in list(tag.attrs):
        value = tag.attrs[name]
        text = " ".join(value) if isinstance(value, list) else str(value)
        lowered = text.strip().lower()
        attr = name.lower()

        if attr.startswith("on"):
            del tag.attrs[name]
        elif attr == "style":
            if any(marker in lowered for marker in _UNSAFE_STYLE_MARKERS):
                del tag.attrs[name]
        elif attr in _RESOURCE_ATTRS or (attr == "href" and tag.name not in _LINK_TAGS):
            del tag.attrs[name]
            if lowered.startswith("cid:") and text.strip()[4:] in inline_resources:
                tag.attrs[name] = inline_resources[text.strip()[4:]]
            elif lowered.startswith("data:") and attr != "srcset":
                tag.attrs[name] = text
            else:
                tag.attrs[f"data-blocked-{attr.replace(':', '-')}"] = text
        elif attr == "href" and lowered.startswith(_UNSAFE_SCHEMES):
            del tag.attrs[name]


def _first_inline_leaf(root: MimeNode, content_type: str) -> MimeNode | None:
    for node in root.leaves():
        if node.content_type != content_type or node.decode_failed:
            continue
        if is_attachment_part(node.content_type, node.disposition, node.filename):
            continue
        return node
    return None


def _inline_resources(root: MimeNode) -> dict[str, str]:
    resources: dict[str, str] = {}
    for node in root.leaves():
        if node.content_id and node.payload and not node.decode_failed:
            encoded = base64.b64encode(node.payload).decode("ascii")
            resources[node.content_id] = f"data:{node.content_type};base64,{encoded}"
    return resources
