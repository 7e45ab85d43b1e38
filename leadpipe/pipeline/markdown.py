"""
Markdown normalizer: scraped HTML to one bounded LLM-ready document per lead.
"""
import logging
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Comment, Declaration, Doctype, ProcessingInstruction
from markdownify import ATX, MarkdownConverter

from leadpipe.config import MAX_MARKDOWN_CHARS
from leadpipe.services import object_store

logger = logging.getLogger('pipeline.markdown')

PRIORITY_PATHS = ['about', 'team', 'staff', 'leadership', 'contact', 'services', 'our-story']

STRIP_TAGS = [
    'script', 'style', 'noscript', 'svg', 'img', 'picture', 'video', 'audio', 'iframe',
    'figure', 'figcaption', 'form', 'input', 'button', 'select', 'textarea',
    'nav', 'header', 'footer', 'aside',
]

TABLE_WRAPPERS = ['table', 'thead', 'tbody', 'tfoot']

_IMAGE_RE = re.compile(r'!\[[^\]]*\]\([^)]*\)')
_LINK_RE = re.compile(r'\[([^\]]*)\]\([^)]*\)')
_URL_RE = re.compile(r'(?:https?://|www\.)\S+', re.I)
_BLANK_RUN = re.compile(r'\n{3,}')
_INNER_SPACES = re.compile(r'(?<=\S)[ \t]{2,}')
_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)

_converter = MarkdownConverter(
    heading_style=ATX,
    bullets='-',
    autolinks=False,
    escape_asterisks=False,
    escape_underscores=False,
    escape_misc=False,
)


def strip_links(markdown: str) -> str:
    """Drop images, keep link text, remove bare URLs."""
    markdown = _IMAGE_RE.sub('', markdown)
    markdown = _LINK_RE.sub(r'\1', markdown)
    return _URL_RE.sub('', markdown)


def _flatten_tables(soup: BeautifulSoup) -> None:
    """Each table row becomes one paragraph of ' | '-joined cells."""
    for row in soup.find_all('tr'):
        cells = [' '.join(cell.get_text(' ').split()) for cell in row.find_all(['td', 'th'], recursive=False)]
        line = soup.new_tag('p')
        line.string = ' | '.join(c for c in cells if c)
        row.replace_with(line)
    for wrapper in soup.find_all(TABLE_WRAPPERS):
        wrapper.unwrap()


def clean_soup(html: str) -> BeautifulSoup:
    soup = BeautifulSoup(html or '', 'html.parser')
    for tag in soup.find_all(STRIP_TAGS):
        tag.decompose()
    for node in soup.find_all(string=lambda s: isinstance(s, _SKIPPED_STRINGS)):
        node.extract()
    _flatten_tables(soup)
    return soup


def html_to_markdown(html: str) -> str:
    markdown = strip_links(_converter.convert_soup(clean_soup(html)))
    lines = [_INNER_SPACES.sub(' ', line).rstrip() for line in markdown.split('\n')]
    return _BLANK_RUN.sub('\n\n', '\n'.join(lines)).strip()


def page_rank(url: str) -> Tuple[int, str]:
    lowered = (url or '').lower()
    for index, path in enumerate(PRIORITY_PATHS):
        if path in lowered:
            return index, url
    return len(PRIORITY_PATHS), url


def render_page(page) -> str:
    return f"# {page.title or 'Untitled'}\nSource: {page.url}\n---\n{html_to_markdown(page.html)}\n\n"


def build_markdown(pages, max_chars: int = None) -> Tuple[str, List[str]]:
    """
    Returns (document, per-page sections). The document concatenates the
    sections in priority order and is cut to exactly max_chars.
    """
    max_chars = MAX_MARKDOWN_CHARS if max_chars is None else max_chars
    sections = [render_page(page) for page in sorted(pages, key=lambda p: page_rank(p.url))]

    parts, used = [], 0
    for section in sections:
        remaining = max_chars - used
        if remaining <= 0:
            break
        piece = section[:remaining]
        parts.append(piece)
        used += len(piece)

    document = ''.join(parts)
    if len(document) < sum(len(s) for s in sections):
        logger.info("Markdown truncated to %d chars (%d pages)", len(document), len(sections))
    return document, sections


def markdown_key(lead_id: str, run_id: str) -> str:
    return f"scrape-markdown/{lead_id}/{run_id}.md"


def pages_prefix(lead_id: str, run_id: str) -> str:
    return f"scrape-markdown/{lead_id}/{run_id}/pages/"


def normalize_and_store(pages, lead_id: str, run_id: str) -> Optional[dict]:
    """
    Write the combined document and each page section to the object store.
    Returns {markdown_key, pages_prefix, chars}, or None when there are no pages.
    """
    if not pages:
        return None

    document, sections = build_markdown(pages)
    key = markdown_key(lead_id, run_id)
    prefix = pages_prefix(lead_id, run_id)

    object_store.put_text(key, document, content_type='text/markdown')
    for index, section in enumerate(sections):
        object_store.put_text(f"{prefix}{index:02d}.md", section, content_type='text/markdown')

    logger.info("Stored %d chars of markdown for %d pages", len(document), len(sections),
                extra={'lead_id': lead_id, 'run_id': run_id})
    return {'markdown_key': key, 'pages_prefix': prefix, 'chars': len(document)}
