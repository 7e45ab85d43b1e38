"""
Social profile extraction: first valid profile URL per platform.
"""
import logging
import re
from typing import Dict, Iterable, Optional
from urllib.parse import urlparse, urlunparse

logger = logging.getLogger('extractors.social')

PLATFORMS = ('linkedin', 'facebook', 'instagram', 'twitter')

SOCIAL_PATTERNS = {
    'linkedin': re.compile(r'https?://(?:www\.)?linkedin\.com/(?:company|in)/[a-zA-Z0-9_-]+/?', re.I),
    'facebook': re.compile(r'https?://(?:www\.)?facebook\.com/[a-zA-Z0-9._-]+/?', re.I),
    'instagram': re.compile(r'https?://(?:www\.)?instagram\.com/[a-zA-Z0-9._-]+/?', re.I),
    'twitter': re.compile(r'https?://(?:www\.)?(?:twitter\.com|x\.com)/[a-zA-Z0-9_]+/?', re.I),
}

_HOSTS = {
    'linkedin': {'linkedin.com'},
    'facebook': {'facebook.com'},
    'instagram': {'instagram.com'},
    'twitter': {'twitter.com', 'x.com'},
}

# Share dialogs, login walls, tracking pixels and content pages, not profiles
_BLOCKED_PREFIXES = {
    'facebook': {
        'plugins', 'share.php', 'sharer.php', 'dialog', 'help', 'privacy', 'terms',
        'login', 'watch', 'events', 'groups', 'tr', 'pixel', 'ads',
    },
    'linkedin': {
        'feed', 'jobs', 'learning', 'mynetwork', 'posts', 'pulse', 'search', 'sharearticle',
    },
    'instagram': {'explore', 'p', 'reel', 'reels', 'stories', 'tv'},
    'twitter': {'home', 'intent', 'search', 'share', 'hashtag', 'i'},
}

_LINKEDIN_PATH_RE = re.compile(r'^/(company|in)/[^/]+/?$', re.I)


def normalize_profile_url(raw_url: str) -> Optional[str]:
    """Drop query/fragment and trailing slashes; None if unparseable."""
    try:
        parsed = urlparse(raw_url.strip())
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, '', '', '')).rstrip('/')


def is_valid_profile_url(raw_url: str, platform: str) -> bool:
    try:
        parsed = urlparse(raw_url.strip())
    except ValueError:
        return False
    host = parsed.netloc.lower()
    if host.startswith('www.'):
        host = host[4:]
    if host not in _HOSTS.get(platform, ()):
        return False

    head = parsed.path.lstrip('/').split('/')[0].lower()
    if not head or head in _BLOCKED_PREFIXES[platform]:
        return False
    if platform == 'linkedin':
        return bool(_LINKEDIN_PATH_RE.match(parsed.path))
    return True


def _first_valid(candidates: Iterable[str], platform: str) -> Optional[str]:
    for candidate in candidates:
        if is_valid_profile_url(candidate, platform):
            normalized = normalize_profile_url(candidate)
            if normalized:
                return normalized
    return None


def extract_social_links(html: str) -> Dict[str, str]:
    """Scan raw HTML for profile URLs; returns {platform: url} for platforms found."""
    social = {}
    for platform in PLATFORMS:
        match = _first_valid(SOCIAL_PATTERNS[platform].findall(html or ''), platform)
        if match:
            social[platform] = match
    if social:
        logger.debug("Found social: %s", ', '.join(f"{k}={v}" for k, v in social.items()))
    return social


def social_from_same_as(urls: Iterable[str]) -> Dict[str, str]:
    """Classify Schema.org sameAs URLs by platform, using the same validator."""
    social = {}
    for url in urls:
        for platform in PLATFORMS:
            if platform in social:
                continue
            if is_valid_profile_url(url, platform):
                normalized = normalize_profile_url(url)
                if normalized:
                    social[platform] = normalized
                break
    return social
