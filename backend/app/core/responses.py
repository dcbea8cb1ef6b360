"""Response envelopes for list endpoints.

Lists come back as ``{"items": [...], "total": n}``. Paged lists also carry
``page``, ``limit``, ``pages`` and ``has_more`` so clients can render pagers
without a second count request.
"""

from typing import Optional


def list_response(items: list, total: Optional[int] = None) -> dict:
    return {
        "items": items,
        "total": total if total is not None else len(items),
    }


def paginated_response(items: list, total: int, page: int = 1, limit: int = 20, **extra) -> dict:
    """Wrap one page of results.

    Args:
        items: The serialized rows for this page.
        total: Row count across all pages.
        page: 1-based page number.
        limit: Page size.
        **extra: Additional top-level keys (e.g. ``unread_count``).
    """
    pages = (total + limit - 1) // limit if limit else 0
    body = {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": pages,
        "has_more": page * limit < total,
    }
    body.update(extra)
    return body


def page_offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit
