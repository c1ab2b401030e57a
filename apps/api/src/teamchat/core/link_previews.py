from __future__ import annotations

from typing import Dict, Optional

import requests
from bs4 import BeautifulSoup

from teamchat.core.config import settings
from teamchat.core.logging_config import get_logger

logger = get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; TeamChatLinkPreview/1.0)"
MAX_HTML_BYTES = 512 * 1024


def _meta_content(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    if tag is None:
        return None
    value = (tag.get("content") or "").strip()
    return value or None


def parse_metadata(url: str, page: str) -> Dict[str, Optional[str]]:
    soup = BeautifulSoup(page, "lxml")

    title = _meta_content(soup, "og:title")
    if not title and soup.title:
        title = soup.title.get_text(strip=True)

    return {
        "url": url,
        "title": title or None,
        "description": _meta_content(soup, "og:description") or _meta_content(soup, "description"),
        "image": _meta_content(soup, "og:image"),
        "site_name": _meta_content(soup, "og:site_name"),
    }


def fetch_link_metadata(url: str, timeout: Optional[int] = None) -> Optional[Dict[str, Optional[str]]]:
    """Best-effort OpenGraph lookup. Any failure yields None, never an error."""
    if not url.lower().startswith(("http://", "https://")):
        return None

    try:
        r = requests.get(
            url,
            headers={"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"},
            timeout=timeout or settings.LINK_PREVIEW_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.warning("link preview fetch failed url=%s error=%s", url, exc)
        return None

    if r.status_code >= 400:
        logger.warning("link preview fetch failed url=%s status=%s", url, r.status_code)
        return None

    return parse_metadata(url, r.text[:MAX_HTML_BYTES])
