from decimal import ROUND_HALF_UP, Decimal
from typing import List, Literal, Optional, Sequence

from stockdesk.utils.config import get_settings

_CENT = Decimal("0.01")


def round_money(value: float) -> Decimal:
    """Round to cents, halves away from zero (ROUND_HALF_UP in decimal terms)."""
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def fmt_money(value: Optional[float], currency: Optional[str] = None) -> str:
    """
    Two fraction digits, always.

    >>> fmt_money(2.675)
    'Rs.2.68'
    >>> fmt_money(-0.005, currency="")
    '-0.01'
    """
    if currency is None:
        currency = get_settings().currency
    return f"{currency}{round_money(value or 0.0)}"


def fmt_pct(value: Optional[float], digits: int = 1) -> str:
    quant = Decimal(1).scaleb(-digits)
    return f"{Decimal(str(value or 0.0)).quantize(quant, rounding=ROUND_HALF_UP)}%"


def generate_markdown_table(
    headers: Optional[Sequence[str]],
    rows: List[Sequence[object]],
    aligns: Optional[Sequence[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Render rows as a Markdown table for the MarkdownViewer panes.

    Args:
        headers: column headers, or None to promote the first row.
        rows: cell values, converted with str().
        aligns: 'l', 'c' or 'r' per column, centered by default.
    """
    if not rows:
        return ""
    if not headers:
        headers, rows = rows[0], rows[1:]

    cells = [[str(c).replace("|", "\\|") for c in row] for row in rows]
    heads = [str(h) for h in headers]
    aligns = list(aligns) if aligns is not None else ["c"] * len(heads)
    if len(aligns) != len(heads):
        raise ValueError("Length of aligns must match number of headers.")

    rule = {"l": ":---", "c": ":---:", "r": "---:"}
    lines = [
        "| " + " | ".join(heads) + " |",
        "| " + " | ".join(rule[a] for a in aligns) + " |",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in cells)
    return "\n".join(lines)
