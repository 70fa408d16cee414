"""Parsing of "field:direction" sort parameters for list queries."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

DIRECTIONS = {"asc": asc, "desc": desc}


def parse_order_by(
    order_by: str | None,
    allowed: Mapping[str, Any],
    default: tuple[str, str],
) -> tuple[str, str]:
    """Resolve a sort string like "total_amount:desc" against allowed fields.

    Unknown fields fall back to the default sort; an unknown direction falls
    back to the default direction.
    """
    if not order_by:
        return default
    name, _, direction = order_by.partition(":")
    if name not in allowed:
        return default
    direction = direction or "asc"
    if direction not in DIRECTIONS:
        direction = default[1]
    return name, direction


def apply_order_by(
    query: Query,  # type: ignore[type-arg]
    allowed: Mapping[str, Any],
    order_by: str | None,
    default: tuple[str, str] = ("created_at", "desc"),
) -> Query:  # type: ignore[type-arg]
    """Order a query by one of the allowed columns."""
    name, direction = parse_order_by(order_by, allowed, default)
    return query.order_by(DIRECTIONS[direction](allowed[name]))
