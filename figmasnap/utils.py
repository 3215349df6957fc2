# utils.py
import re
from datetime import datetime
from typing import Optional
from urllib.parse import urlparse, parse_qsl, urlencode, urlunparse

from .constants import logger, DEFAULT_PROTOTYPE_NAME

PROTOTYPE_URL_PATTERN = re.compile(r'^https?://(www\.)?figma\.com/(proto|file)/[\w\-]+')
TITLE_SEPARATORS = (' – ', ' - ')
UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def is_prototype_url(url: Optional[str]) -> bool:
    return bool(url) and PROTOTYPE_URL_PATTERN.match(url) is not None


def sanitize_filename(name: str) -> str:
    """ストレージキー用: 英数字以外を _ に置き換えて小文字化"""
    return re.sub(r'[^a-z0-9]', '_', str(name), flags=re.IGNORECASE | re.ASCII).lower()


def flow_target_url(url: str, node_id: Optional[str]) -> str:
    """node-id クエリを差し替えたフローのURLを返す"""
    if not node_id:
        return url
    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != 'node-id']
    query.append(('node-id', node_id))
    return urlunparse(parsed._replace(query=urlencode(query)))


def label_from_title(title: Optional[str]) -> Optional[str]:
    if not title:
        return None
    label = title
    for separator in TITLE_SEPARATORS:
        label = label.split(separator)[0]
    return label.strip() or None


def prototype_name_from_title(title: Optional[str]) -> str:
    label = label_from_title(title)
    if not label:
        return DEFAULT_PROTOTYPE_NAME
    name = UNSAFE_FILENAME_CHARS.sub('_', label).strip()
    if not name:
        logger.debug(f"Title '{title}' produced an empty name, using default")
        return DEFAULT_PROTOTYPE_NAME
    return name[:50]


def timestamp_slug(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return now.isoformat().replace(':', '-').replace('.', '-')[:19]


def document_filename(title: Optional[str], now: Optional[datetime] = None) -> str:
    return f"{prototype_name_from_title(title)}_{timestamp_slug(now)}.pdf"


def slide_filename(index: int) -> str:
    return f"slide_{index:03d}.png"
