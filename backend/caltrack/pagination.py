import math

from sqlalchemy.orm import Query

from . import config


def clamp_per_page(per_page: int | None) -> int:
    if not per_page or per_page < 1:
        return config.DEFAULT_PAGE_SIZE
    return min(per_page, config.MAX_PAGE_SIZE)


def paginate(query: Query, page: int = 1, per_page: int | None = None) -> dict:
    """Slice an ordered query into the page envelope used by list endpoints."""

    per_page = clamp_per_page(per_page)
    page = max(page or 1, 1)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": items,
        "total": total,
        "page": page,
        "per_page": per_page,
        "last_page": max(1, math.ceil(total / per_page)),
    }
