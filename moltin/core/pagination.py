"""Page/limit handling shared by every list endpoint."""

import math
from typing import Any, Dict, Optional, Tuple

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def normalize_pagination_params(page: Any = None, limit: Any = None) -> Tuple[int, int, int]:
    """
    Coerce raw page/limit query values.

    Unparseable values fall back to the defaults; page is at least 1 and
    limit is clamped to [1, MAX_LIMIT].

    Returns:
        (page, limit, offset)
    """
    page_num = _parse_int(page)
    if page_num is None or page_num < 1:
        page_num = DEFAULT_PAGE

    limit_num = _parse_int(limit)
    if limit_num is None:
        limit_num = DEFAULT_LIMIT
    limit_num = max(1, min(limit_num, MAX_LIMIT))

    return page_num, limit_num, (page_num - 1) * limit_num


def pagination_metadata(total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "has_more": page * limit < total,
    }


def paginated(items, total: int, page: int, limit: int) -> Dict[str, Any]:
    """Shape a page of items with its pagination block."""
    return {"data": items, "pagination": pagination_metadata(total, page, limit)}
