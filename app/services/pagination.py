"""Cursor pagination over Shopify connections, and tag candidate filtering."""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Page:
    items: List[Any] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


def walk(fetch_page: Callable[[Optional[str], int], Optional[Page]], page_size: int) -> Iterator[Page]:
    """
    Yield pages from ``fetch_page(cursor, page_size)`` until exhausted.

    Always starts from ``cursor=None``; cursors are not kept across runs.
    A missing page (``None``) from the API ends the walk rather than raising,
    so an intermittent empty envelope is treated as "no more data".
    The next page is only requested after the caller has consumed the
    previous one.
    """
    cursor = None
    page_number = 0
    while True:
        page = fetch_page(cursor, page_size)
        if page is None:
            logger.info("Empty data envelope after %d page(s), stopping", page_number)
            return

        page_number += 1
        yield page

        if not page.has_more or not page.next_cursor:
            return
        cursor = page.next_cursor


def collect_tags(fetch_page: Callable[[Optional[str], int], Optional[Page]], page_size: int) -> List[str]:
    """Walk every tag page and return the deduplicated tag set in first-seen order."""
    seen = {}
    for page in walk(fetch_page, page_size):
        for tag in page.items:
            seen.setdefault(tag, None)
    return list(seen)


MATCH_TYPES = ("contains", "start", "end", "exact")


def _matches(tag: str, value: str, match_type: str) -> bool:
    t = tag.lower()
    v = value.strip().lower()
    if match_type == "exact":
        return t == v
    if match_type == "start":
        return t.startswith(v)
    if match_type == "end":
        return t.endswith(v)
    return v in t


def filter_tags(all_tags: List[str], conditions: List[dict], match_type: str = "contains") -> List[str]:
    """
    Apply search conditions to the complete tag set.

    The first condition seeds the result. Each following condition is applied
    left to right: ``AND`` narrows the current result, ``OR`` unions in every
    tag from the full set that matches it.
    """
    if not conditions:
        return list(all_tags)

    result = [t for t in all_tags if _matches(t, conditions[0]["value"], match_type)]

    for cond in conditions[1:]:
        if cond.get("operator", "AND").upper() == "AND":
            result = [t for t in result if _matches(t, cond["value"], match_type)]
        else:
            extra = [t for t in all_tags if _matches(t, cond["value"], match_type)]
            result = list(dict.fromkeys(result + extra))

    return result
