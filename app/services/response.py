def list_response(
    items: list, limit: int, offset: int, *, total: int | None = None
) -> dict:
    """Envelope for admin listings; ``total`` defaults to the page size."""
    if total is None:
        total = len(items)
    return {
        "items": items,
        "count": len(items),
        "limit": limit,
        "offset": offset,
        "total": total,
        "has_more": offset + len(items) < total,
    }
