from __future__ import annotations

from typing import Any, Iterable, List, Optional

from rich.markup import escape
from rich.table import Table

from ..charge_rules.types import ChargeRuleSet, ComputedCharge
from ..checkout.totals import OrderCharges
from ..config import CURRENCY_SYMBOL


def _md_escape(v: Any) -> str:
    s = "" if v is None else str(v)
    # Escape pipes so Markdown tables don't break
    return s.replace("|", "\\|").replace("\n", " ").strip()


def _money(v: Any, symbol: str = CURRENCY_SYMBOL) -> str:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return ""
    return f"{symbol}{f:,.2f}"


def _band(min_amount: float, max_amount: Optional[float]) -> str:
    if max_amount is None:
        return f">= {min_amount:,.2f}" if min_amount else "any"
    return f"{min_amount:,.2f} - {max_amount:,.2f}"


def _rate(calculation_type: str, value: float) -> str:
    if calculation_type == "percentage":
        return f"{value:g}%"
    return _money(value)


def charges_table(charges: Iterable[ComputedCharge], *, title: str = "Charges") -> Table:
    """Rich table of computed charges. Free text is escaped, ``title`` is markup."""
    table = Table(title=title)
    table.add_column("Type")
    table.add_column("Rate", justify="right")
    table.add_column("Order band")
    table.add_column("Weather")
    table.add_column("Priority", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Description")
    for ch in charges:
        amount = _money(ch.calculated_amount)
        table.add_row(
            escape(ch.charge_type),
            _rate(ch.calculation_type, ch.value),
            _band(ch.min_order_amount, ch.max_order_amount),
            escape(ch.weather_condition) if ch.charge_type == "rain" else "-",
            str(ch.priority),
            amount if ch.calculated_amount > 0 else f"[dim]{amount}[/dim]",
            escape(ch.description),
        )
    return table


def summary_table(summary: OrderCharges) -> Table:
    table = Table(title="Order total", show_header=False)
    table.add_column("Line")
    table.add_column("Amount", justify="right")
    table.add_row("Subtotal", _money(summary.subtotal))
    table.add_row("Delivery", _money(summary.delivery))
    table.add_row("Packaging", _money(summary.packaging))
    table.add_row("Rain", _money(summary.rain))
    table.add_row("Service", _money(summary.service))
    table.add_row("Tax", _money(summary.gst))
    if summary.discount:
        table.add_row("Discount", f"-{_money(summary.discount)}")
    table.add_row("[bold]Payable[/bold]", f"[bold]{_money(summary.final_amount)}[/bold]")
    return table


def rule_sets_table(rule_sets: Iterable[ChargeRuleSet]) -> Table:
    table = Table(title="Rule sets")
    table.add_column("Scope")
    table.add_column("Category id")
    table.add_column("Active")
    table.add_column("Rules", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Source")
    for rs in rule_sets:
        table.add_row(
            escape(rs.label),
            escape(rs.category_id or "-"),
            "yes" if rs.is_active else "[yellow]no[/yellow]",
            str(len(rs.rules)),
            str(len(rs.issues)) if rs.issues else "-",
            escape(rs.source),
        )
    return table


def render_charges_markdown(
    charges: Iterable[ComputedCharge],
    summary: Optional[OrderCharges] = None,
    *,
    rule_set_label: str = "",
) -> str:
    """Plain Markdown rendering, for pasting into tickets and order notes."""
    out: List[str] = []
    if rule_set_label:
        out.append(f"### Charges ({_md_escape(rule_set_label)})\n\n")
    out.append("| Type | Rate | Order band | Priority | Amount | Description |\n")
    out.append("|---|---:|---|---:|---:|---|\n")
    for ch in charges:
        out.append(
            "| "
            + " | ".join(
                [
                    _md_escape(ch.charge_type),
                    _md_escape(_rate(ch.calculation_type, ch.value)),
                    _md_escape(_band(ch.min_order_amount, ch.max_order_amount)),
                    str(ch.priority),
                    _money(ch.calculated_amount),
                    _md_escape(ch.description),
                ]
            )
            + " |\n"
        )

    if summary is not None:
        out.append("\n| Line | Amount |\n")
        out.append("|---|---:|\n")
        for label, value in (
            ("Subtotal", summary.subtotal),
            ("Delivery", summary.delivery),
            ("Packaging", summary.packaging),
            ("Rain", summary.rain),
            ("Service", summary.service),
            ("Tax", summary.gst),
            ("Discount", -summary.discount),
        ):
            out.append(f"| {label} | {_money(value)} |\n")
        out.append(f"| **Payable** | **{_money(summary.final_amount)}** |\n")

    return "".join(out)


__all__ = ["charges_table", "summary_table", "rule_sets_table", "render_charges_markdown"]
