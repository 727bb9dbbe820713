"""Paging helpers for the navigation bar."""

from typing import Any, Dict, List, Mapping, Tuple

from .session import ALL_ROWS


def get_offsets(tmpval: Mapping[str, Any]) -> Tuple[int, int]:
    """Offsets of the next and the previous page."""
    if tmpval.get('max_rows') == ALL_ROWS:
        return 0, 0

    pos = tmpval.get('pos')
    pos = pos if isinstance(pos, int) else 0
    max_rows = tmpval.get('max_rows')
    max_rows = max_rows if isinstance(max_rows, int) else 25

    return pos + max_rows, max(0, pos - max_rows)


def page_selector(
    rows: int,
    page_now: int = 1,
    total_pages: int = 1,
    show_all: int = 200,
    slice_start: int = 5,
    slice_end: int = 5,
    percent: int = 20,
    page_range: int = 10,
) -> List[Dict[str, Any]]:
    """
    Pages offered by the page drop-down.

    Small result sets list every page. Large ones list the first and last
    pages, a page every ``percent`` of the set, every page within
    ``page_range`` of the current one and pages at doubling distances from it.

    Args:
        rows: Rows per page
        page_now: Current page (1-based)
        total_pages: Number of pages

    Returns:
        List of {page, value, selected} where value is the page offset
    """
    increment = max(1, total_pages // percent)
    lower = page_now - page_range
    upper = page_now + page_range

    if total_pages < show_all:
        pages = list(range(1, total_pages + 1))
    else:
        pages = list(range(1, slice_start + 1))
        pages.extend(range(total_pages - slice_end, total_pages + 1))

        i = slice_start
        last = total_pages - slice_end
        met_boundary = False
        while i <= last:
            if lower <= i <= upper:
                i += 1
                met_boundary = True
            else:
                i += increment
                if i > lower and not met_boundary:
                    i = lower
            if i <= 0 or i > last:
                continue
            pages.append(i)

        i = page_now
        distance = 1
        while i < last:
            distance *= 2
            i = page_now + distance
            if 0 < i <= last:
                pages.append(i)

        i = page_now
        distance = 1
        while i > 0:
            distance *= 2
            i = page_now - distance
            if 0 < i <= last:
                pages.append(i)

        pages = sorted(set(pages))

    if page_now > total_pages:
        pages.append(page_now)

    return [
        {'page': page, 'value': (page - 1) * rows, 'selected': page == page_now}
        for page in pages
    ]
