"""Color palette for table and CTE nodes.

Each table (or CTE) in a query gets its own color so output columns can be
traced back to their source visually. The builder only assigns palette
indexes; this module maps an index to concrete colors.
"""

from __future__ import annotations

from pydantic import BaseModel


class TableColor(BaseModel):
    # node header background
    header: str
    # output column row highlight
    row: str
    # left border accent on output column rows
    border: str


PALETTE: tuple[TableColor, ...] = (
    TableColor(header="#dbeafe", row="#eff6ff", border="#3b82f6"),  # blue
    TableColor(header="#ffe4e6", row="#fff1f2", border="#f43f5e"),  # rose
    TableColor(header="#fef3c7", row="#fffbeb", border="#f59e0b"),  # amber
    TableColor(header="#ccfbf1", row="#f0fdfa", border="#14b8a6"),  # teal
    TableColor(header="#f3e8ff", row="#faf5ff", border="#a855f7"),  # purple
    TableColor(header="#ffedd5", row="#fff7ed", border="#f97316"),  # orange
    TableColor(header="#e0e7ff", row="#eef2ff", border="#6366f1"),  # indigo
    TableColor(header="#fce7f3", row="#fdf2f8", border="#ec4899"),  # pink
)


def get_table_color(index: int) -> TableColor:
    """Palette entry for a color index; wraps around past the last color."""
    return PALETTE[index % len(PALETTE)]
