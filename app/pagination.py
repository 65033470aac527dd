import math
from typing import List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query

from app.errors import validation_error

T = TypeVar("T")


def offset_for(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def page_count(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size))


def paging_info(total: int, page: int, page_size: int) -> dict:
    return {"total": total, "page": page, "pages": page_count(total, page_size)}


def paginate_offset(query: Query, page: int, page_size: int, order_by) -> Tuple[List, int]:
    total = query.order_by(None).count()
    rows = query.order_by(*order_by).offset(offset_for(page, page_size)).limit(page_size).all()
    return rows, total


def split_cursor_page(rows: Sequence[T], page_size: int) -> Tuple[List[T], Optional[str]]:
    """Trim a page fetched with ``page_size + 1`` rows and work out the next cursor."""
    if len(rows) > page_size:
        page = list(rows[:page_size])
        return page, page[-1].id
    return list(rows), None


def paginate_cursor(query: Query, model, cursor: Optional[str], page_size: int) -> Tuple[List, Optional[str]]:
    """Keyset pagination ordered by (created_at desc, id desc).

    ``cursor`` is the id of the last row of the previous page and must belong
    to ``query``'s result set.
    """
    if cursor:
        anchor = query.filter(model.id == cursor).first()
        if anchor is None:
            raise validation_error("Invalid cursor")
        query = query.filter(
            or_(
                model.created_at < anchor.created_at,
                and_(model.created_at == anchor.created_at, model.id < anchor.id),
            )
        )

    rows = query.order_by(model.created_at.desc(), model.id.desc()).limit(page_size + 1).all()
    return split_cursor_page(rows, page_size)
