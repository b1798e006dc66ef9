import math
from typing import Any, Dict, List, Tuple


def clamp_page(page: int, page_size: int, default_size: int, max_size: int) -> Tuple[int, int, int]:
    """Normalize page/page_size from query params. Returns (page, page_size, offset)."""
    page = max(1, page or 1)
    page_size = page_size or default_size
    page_size = min(max_size, max(1, page_size))
    return page, page_size, (page - 1) * page_size


def page_payload(rows: List[Any], count: int, page: int, page_size: int) -> Dict[str, Any]:
    """Paginated list envelope shared by the list endpoints."""
    total_pages = math.ceil(count / page_size) if page_size else 0
    return {
        "rows": rows,
        "count": count,
        "current_page": page,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }
