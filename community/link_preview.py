"""
Open Graph link previews.

fetch_link_preview() downloads at most LINK_PREVIEW_MAX_BYTES of a page (or
up to ``</head>``) and extracts title, description, image, site name, type and
favicon, falling back to <title>, meta description and twitter:image.
"""

import logging
import re
from html import unescape
from urllib.parse import urljoin, urlparse

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class LinkPreviewError(Exception):
    def __init__(self, message, status=500):
        self.message = message
        self.status = status
        super().__init__(message)


def _meta_pattern(attribute, name):
    # Attribute order varies: property before content, or content first
    return (
        re.compile(
            rf"""<meta[^>]*{attribute}=["']{re.escape(name)}["'][^>]*content=["']([^"']+)["']""",
            re.IGNORECASE,
        ),
        re.compile(
            rf"""<meta[^>]*content=["']([^"']+)["'][^>]*{attribute}=["']{re.escape(name)}["']""",
            re.IGNORECASE,
        ),
    )


OG_TITLE = _meta_pattern('property', 'og:title')
OG_DESCRIPTION = _meta_pattern('property', 'og:description')
OG_IMAGE = _meta_pattern('property', 'og:image')
OG_SITE_NAME = _meta_pattern('property', 'og:site_name')
OG_TYPE = _meta_pattern('property', 'og:type')
META_DESCRIPTION = _meta_pattern('name', 'description')
TWITTER_IMAGE = _meta_pattern('name', 'twitter:image')

TITLE_PATTERN = re.compile(r'<title[^>]*>([^<]+)</title>', re.IGNORECASE)
FAVICON_PATTERNS = (
    re.compile(r"""<link[^>]*rel=["'](?:shortcut )?icon["'][^>]*href=["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""<link[^>]*href=["']([^"']+)["'][^>]*rel=["'](?:shortcut )?icon["']""", re.IGNORECASE),
)

def decode_html(text):
    return unescape(text).strip()


def resolve_url(path, base):
    if path.startswith(('http://', 'https://')):
        return path
    if path.startswith('//'):
        return 'https:' + path
    try:
        return urljoin(base, path)
    except ValueError:
        return path


def is_valid_url(value):
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def _first(patterns, html):
    for pattern in patterns:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def extract_meta_tags(html, url):
    data = {'url': url}

    title = _first(OG_TITLE, html)
    if title:
        data['title'] = decode_html(title)

    description = _first(OG_DESCRIPTION, html)
    if description:
        data['description'] = decode_html(description)

    image = _first(OG_IMAGE, html)
    if image:
        data['image'] = resolve_url(image, url)

    site_name = _first(OG_SITE_NAME, html)
    if site_name:
        data['siteName'] = decode_html(site_name)

    og_type = _first(OG_TYPE, html)
    if og_type:
        data['type'] = og_type

    if 'title' not in data:
        match = TITLE_PATTERN.search(html)
        if match:
            data['title'] = decode_html(match.group(1))

    if 'description' not in data:
        description = _first(META_DESCRIPTION, html)
        if description:
            data['description'] = decode_html(description)

    if 'image' not in data:
        image = _first(TWITTER_IMAGE, html)
        if image:
            data['image'] = resolve_url(image, url)

    favicon = _first(FAVICON_PATTERNS, html)
    if favicon:
        data['favicon'] = resolve_url(favicon, url)
    else:
        parsed = urlparse(url)
        data['favicon'] = f"{parsed.scheme}://{parsed.netloc}/favicon.ico"

    return data


def fetch_link_preview(url, session=None):
    """
    Fetch ``url`` and return its preview dict.

    Raises LinkPreviewError with the HTTP status the endpoint should answer
    with (400 invalid URL, 408 timeout, 422 not HTML / upstream error).
    """
    if not url:
        raise LinkPreviewError('URL parameter is required', status=400)
    if not is_valid_url(url):
        raise LinkPreviewError('Invalid URL', status=400)

    http = session or requests
    max_bytes = settings.LINK_PREVIEW_MAX_BYTES
    try:
        response = http.get(
            url,
            stream=True,
            timeout=settings.LINK_PREVIEW_TIMEOUT,
            headers={
                'User-Agent': settings.LINK_PREVIEW_USER_AGENT,
                'Accept': 'text/html,application/xhtml+xml',
                'Accept-Language': 'nb-NO,nb,en',
            },
        )
    except requests.Timeout:
        raise LinkPreviewError('Request timeout', status=408)
    except requests.RequestException as e:
        logger.warning(f"Link preview fetch failed for {url}: {e}")
        raise LinkPreviewError('Failed to fetch link preview', status=500)

    try:
        if not response.ok:
            raise LinkPreviewError('Failed to fetch URL', status=422)

        content_type = response.headers.get('content-type', '')
        if 'text/html' not in content_type and 'application/xhtml' not in content_type:
            raise LinkPreviewError('URL does not return HTML content', status=422)

        raw = b''
        try:
            for chunk in response.iter_content(chunk_size=8192):
                raw += chunk
                if b'</head>' in raw or len(raw) >= max_bytes:
                    break
        except requests.Timeout:
            raise LinkPreviewError('Request timeout', status=408)
        except requests.RequestException as e:
            logger.warning(f"Link preview read failed for {url}: {e}")
            raise LinkPreviewError('Failed to fetch link preview', status=500)
    finally:
        response.close()

    # Chunk boundaries can split multi-byte characters
    html = raw[:max_bytes].decode(response.encoding or 'utf-8', errors='replace')
    return extract_meta_tags(html, url)
