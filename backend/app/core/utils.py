"""
Utility functions for the application.
"""
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from decimal import Decimal
from fastapi.encoders import jsonable_encoder

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
MAX_PAGE = 1_000_000
LIKE_ESCAPE = "/"


def serialize_date(obj: Any) -> str:
    """Serialize date objects to ISO format strings."""
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    raise TypeError(f"Type {type(obj)} not serializable")


def to_float(value: Any) -> float:
    """Convert a DB aggregate (Decimal, int, None) to a 2-decimal float."""
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        value = float(value)
    return round(float(value), 2)


def percentage(part: Any, whole: Any) -> float:
    """part / whole * 100, rounded to 2 decimals; 0 when whole is 0."""
    whole = to_float(whole)
    if whole == 0:
        return 0.0
    return round(to_float(part) * 100.0 / whole, 2)


def clamp_pagination(page: Optional[int], limit: Optional[int], default_limit: int = DEFAULT_PAGE_SIZE) -> tuple:
    """Clamp page to [1, MAX_PAGE] and limit to [1, MAX_PAGE_SIZE]."""
    page_num = min(MAX_PAGE, max(1, page if page is not None else 1))
    limit_num = min(MAX_PAGE_SIZE, max(1, limit if limit is not None else default_limit))
    return page_num, limit_num


def like_pattern(term: str) -> str:
    """Substring LIKE pattern with wildcards in `term` escaped; pair with escape=LIKE_ESCAPE."""
    escaped = term
    for char in (LIKE_ESCAPE, "%", "_"):
        escaped = escaped.replace(char, LIKE_ESCAPE + char)
    return f"%{escaped}%"


def pagination_info(page: int, limit: int, total_count: int) -> Dict[str, Any]:
    """Build the pagination block returned alongside list payloads."""
    total_pages = (total_count + limit - 1) // limit
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_count": total_count,
        "limit": limit,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def format_response(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Format a successful API response envelope (JSON-ready)."""
    response = {"success": True}
    if message:
        response["message"] = message
    if data is not None:
        response["data"] = jsonable_encoder(data)
    return response


def format_error(message: str, errors: Optional[List[Any]] = None, **extra: Any) -> Dict[str, Any]:
    """Format error response envelope."""
    response = {"success": False, "message": message}
    if errors:
        response["errors"] = jsonable_encoder(errors)
    response.update(extra)
    return response
