"""
Terminal rendering of aggregated tokens.

Used by `python -m token_aggregator snapshot`.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from token_aggregator.domain.models import AggregatedRecord, Page

console = Console()


def _truncate(text: str, max_len: int) -> str:
    text = (text or "").strip()
    if len(text) <= max_len:
        return text
    return text[: max(0, max_len - 3)] + "..."


def format_amount(value: Decimal) -> str:
    """Compact native-unit amount: 1.2K, 3.4M, 5.6B."""
    for threshold, suffix in ((Decimal("1e9"), "B"), (Decimal("1e6"), "M"), (Decimal("1e3"), "K")):
        if abs(value) >= threshold:
            return f"{value / threshold:.2f}{suffix}"
    return f"{value:.2f}"


def format_price(value: Decimal) -> str:
    if value == 0:
        return "-"
    if abs(value) < Decimal("0.0001"):
        return f"{value:.3e}"
    return f"{value:.6f}".rstrip("0").rstrip(".")


def format_change(value: Decimal | None) -> Text:
    if value is None:
        return Text("-", style="dim")
    style = "green" if value > 0 else "red" if value < 0 else "dim"
    return Text(f"{value:+.2f}%", style=style)


def build_token_table(records: Iterable[AggregatedRecord], *, title: str | None = None) -> Table:
    table = Table(box=box.MINIMAL_DOUBLE_HEAD, expand=True, title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Ticker", style="bold")
    table.add_column("Name")
    table.add_column("Price", justify="right")
    table.add_column("1h", justify="right")
    table.add_column("24h", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("Liquidity", justify="right")
    table.add_column("MCap", justify="right")
    table.add_column("Txns", justify="right")
    table.add_column("Protocol")
    table.add_column("Sources", style="dim")

    for position, record in enumerate(records, start=1):
        table.add_row(
            str(position),
            _truncate(record.ticker, 12) or "?",
            _truncate(record.name, 24),
            format_price(record.price_native),
            format_change(record.price_1h_change),
            format_change(record.price_24h_change),
            format_amount(record.volume_native),
            format_amount(record.liquidity_native),
            format_amount(record.market_cap_native),
            str(record.transaction_count),
            _truncate(record.protocol, 16),
            ",".join(record.sources),
        )
    return table


def render_page(page: Page, *, out: Console | None = None, sort_by: str = "volume") -> None:
    out = out or console
    title = f"{len(page.items)} of {page.total} tokens by {sort_by} (amounts in SOL)"
    out.print(build_token_table(page.items, title=title))
    if page.next_cursor is not None:
        out.print(Text(f"next cursor: {page.next_cursor}", style="dim"))


def render_health(report: dict[str, Any], *, out: Console | None = None) -> None:
    out = out or console
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("key", style="dim")
    table.add_column("value")
    for key, value in report.items():
        table.add_row(key, str(value))
    out.print(table)
