"""
UI components for the token aggregator.
"""

from token_aggregator.ui.table import (
    build_token_table,
    format_amount,
    format_change,
    format_price,
    render_health,
    render_page,
)

__all__ = [
    "build_token_table",
    "format_amount",
    "format_change",
    "format_price",
    "render_health",
    "render_page",
]
