from typing import Any

from sqlalchemy import ColumnElement

from signup_guard.database.base import Base

_RANGE_PREFIXES = {
    "min_": lambda column, value: column >= value,
    "max_": lambda column, value: column <= value,
}


def build_filters(model: type[Base], data: dict[str, Any]) -> list[ColumnElement[bool]]:
    """Turn query params into column filters.

    ``min_<column>``/``max_<column>`` become range bounds, anything else an
    equality match. Keys that are not columns of ``model`` are ignored.
    """
    columns = model.__table__.columns
    filters: list[ColumnElement[bool]] = []
    for key, value in data.items():
        for prefix, compare in _RANGE_PREFIXES.items():
            if key.startswith(prefix) and key[len(prefix):] in columns:
                filters.append(compare(columns[key[len(prefix):]], value))
                break
        else:
            if key in columns:
                filters.append(columns[key] == value)
    return filters


__all__ = ("build_filters",)
