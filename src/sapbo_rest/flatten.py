"""Flattening of nested JSON responses into tables.

Every read endpoint returns records whose fields may themselves be records
(``{"id": 1, "folder": {"name": "Sales"}}``). ``flatten`` promotes those
nested fields to top-level columns named after their last path segment and
returns a :class:`FlatTable` with columns in first-seen order.

Stripping the path prefix can make two different fields share a column name.
How that is handled is chosen with :class:`CollisionPolicy`.
"""

import enum
from collections.abc import Mapping
from typing import Any, TypeAlias

import pydantic
import structlog

from .errors import ColumnCollisionError

logger = structlog.get_logger(__name__)

Path: TypeAlias = tuple[str, ...]

# Column used for list items that are not records.
SCALAR_COLUMN = "value"

PATH_SEPARATOR = "."


class CollisionPolicy(str, enum.Enum):
    """What to do when distinct nested fields flatten to one column name."""

    OVERWRITE = "overwrite"
    """Keep the short name; the field seen last wins and a warning is logged."""

    QUALIFY = "qualify"
    """Give the colliding columns their full dotted path instead."""

    RAISE = "raise"
    """Raise :class:`~sapbo_rest.errors.ColumnCollisionError`."""


class FlatTable(pydantic.BaseModel):
    """Column-aligned rows produced by :func:`flatten`.

    Every row has every column; fields absent from a record are ``None``.
    """

    columns: list[str] = pydantic.Field(default_factory=list)
    rows: list[dict[str, Any]] = pydantic.Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def column(self, name: str) -> list[Any]:
        """Return all values of one column.

        Raises:
            KeyError: If the table has no such column.
        """
        if name not in self.columns:
            raise KeyError(name)
        return [row[name] for row in self.rows]


def _as_records(value: Any) -> list[Mapping[str, Any]]:
    """Normalize the top-level value into a list of records."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [value]
    if isinstance(value, list | tuple):
        return [
            item if isinstance(item, Mapping) else {SCALAR_COLUMN: item}
            for item in value
        ]
    return [{SCALAR_COLUMN: value}]


def _leaves(value: Any, path: Path, out: dict[Path, Any]) -> None:
    """Collect the non-record values below ``path``.

    An empty nested record contributes no fields.
    """
    if isinstance(value, Mapping):
        for key, child in value.items():
            _leaves(child, (*path, str(key)), out)
    else:
        out[path] = value


def _column_names(paths: list[Path], collision: CollisionPolicy) -> dict[Path, str]:
    """Map each leaf path to its output column name."""
    by_name: dict[str, list[Path]] = {}
    for path in paths:
        by_name.setdefault(path[-1], []).append(path)

    names: dict[Path, str] = {}
    for name, group in by_name.items():
        if len(group) == 1:
            names[group[0]] = name
            continue

        dotted = [PATH_SEPARATOR.join(p) for p in group]
        if collision is CollisionPolicy.RAISE:
            raise ColumnCollisionError(name, dotted)
        if collision is CollisionPolicy.QUALIFY:
            names.update(zip(group, dotted, strict=True))
        else:
            logger.warning("Flattened columns collide", column=name, paths=dotted)
            names.update((p, name) for p in group)

    if collision is CollisionPolicy.QUALIFY:
        # A qualified name may equal a literal key such as "parent.id".
        claimed: dict[str, list[Path]] = {}
        for path, name in names.items():
            claimed.setdefault(name, []).append(path)
        for name, group in claimed.items():
            if len(group) > 1:
                raise ColumnCollisionError(
                    name,
                    [PATH_SEPARATOR.join(p) for p in group],
                )
    return names


def flatten(
    value: Any,
    collision: CollisionPolicy | str = CollisionPolicy.OVERWRITE,
) -> FlatTable:
    """Flatten a JSON value into a table.

    A single record is treated as a list of one. Nested records are expanded
    recursively into their leaf fields; lists are kept as cell values.
    Flattening an already flat table's rows returns the same table.

    Args:
        value: Decoded JSON, normally a list of records or one record.
        collision: Policy for fields that flatten to the same name.

    Returns:
        The flattened table. An empty list gives a table with no rows and
        no columns.

    Raises:
        ColumnCollisionError: If ``collision`` is ``RAISE`` and two fields
            share a column name, or ``QUALIFY`` and a qualified name is
            already taken by a literal key.
    """
    collision = CollisionPolicy(collision)

    # First pass: leaf values per record, and every path in first-seen order.
    records: list[dict[Path, Any]] = []
    seen: dict[Path, None] = {}
    for record in _as_records(value):
        leaves: dict[Path, Any] = {}
        _leaves(record, (), leaves)
        records.append(leaves)
        seen.update(dict.fromkeys(leaves))

    paths = list(seen)
    names = _column_names(paths, collision)
    columns = list(dict.fromkeys(names[p] for p in paths))

    rows = []
    for leaves in records:
        row: dict[str, Any] = dict.fromkeys(columns)
        for path in paths:
            if path in leaves:
                row[names[path]] = leaves[path]
        rows.append(row)

    return FlatTable(columns=columns, rows=rows)
