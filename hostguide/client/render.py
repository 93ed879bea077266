"""Prepare page markdown for display to a guest.

- private images are swapped for signed URLs; ones that cannot be resolved are dropped
- image sources that are not http(s) (javascript:, data:, relative) are dropped
- link targets that are not http(s) become ``#``
"""

import re

from hostguide.client.image_resolver import SignedUrlResolver

_URL = r"(?P<url><[^>]*>|(?:[^()\s]|\([^()\s]*\))+)"
_TITLE = r'(?P<title>\s+"[^"]*")?'
_MD_IMAGE_RE = re.compile(r"!\[(?P<alt>[^\]]*)\]\(\s*" + _URL + _TITLE + r"\s*\)")
# Link text may hold an image: [![alt](src)](target)
_LINK_TEXT = r"(?P<text>(?:[^\[\]]|!\[[^\]]*\]\([^)]*\))*)"
_MD_LINK_RE = re.compile(r"(?<!!)\[" + _LINK_TEXT + r"\]\(\s*" + _URL + _TITLE + r"\s*\)")
_HTML_IMG_RE = re.compile(
    r"<img\b[^>]*?\bsrc\s*=\s*(?P<q>[\"'])(?P<url>.*?)(?P=q)[^>]*>",
    flags=re.IGNORECASE | re.DOTALL,
)
_SAFE_URL_RE = re.compile(r"^https?://", flags=re.IGNORECASE)


def _unwrap(url: str) -> str:
    url = url.strip()
    if url.startswith("<") and url.endswith(">"):
        return url[1:-1].strip()
    return url


def is_safe_url(url: str) -> bool:
    return bool(url) and bool(_SAFE_URL_RE.match(url))


def image_paths(content: str, storage_prefix: str) -> list[str]:
    """Private storage paths referenced by images in ``content``, first occurrence order."""
    seen: dict[str, None] = {}
    text = content or ""
    for regex in (_MD_IMAGE_RE, _HTML_IMG_RE):
        for m in regex.finditer(text):
            url = _unwrap(m.group("url"))
            if url.startswith(storage_prefix) and len(url) > len(storage_prefix):
                seen.setdefault(url[len(storage_prefix):], None)
    return list(seen)


def render_markdown(content: str, token: str, resolver: SignedUrlResolver) -> str:
    """Return ``content`` with image and link URLs made safe for display."""

    def _md_image(m: re.Match) -> str:
        resolved = resolver.resolve(_unwrap(m.group("url")), token)
        if not resolved or not is_safe_url(resolved):
            return ""
        return f"![{m.group('alt')}]({resolved}{m.group('title') or ''})"

    def _html_image(m: re.Match) -> str:
        resolved = resolver.resolve(_unwrap(m.group("url")), token)
        if not resolved or not is_safe_url(resolved):
            return ""
        tag = m.group(0)
        start, end = m.span("url")
        offset = m.start()
        return tag[: start - offset] + resolved + tag[end - offset:]

    def _md_link(m: re.Match) -> str:
        url = _unwrap(m.group("url"))
        target = url if is_safe_url(url) else "#"
        return f"[{m.group('text')}]({target}{m.group('title') or ''})"

    text = content or ""
    text = _MD_IMAGE_RE.sub(_md_image, text)
    text = _HTML_IMG_RE.sub(_html_image, text)
    return _MD_LINK_RE.sub(_md_link, text)
