#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Marketplace charges – CLI

Flow:
- Reads a cart JSON (items with categories, subtotal, weather, order date).
- Resolves the applicable rule set from the rule store (definitions directory
  or the admin API).
- Computes one charge per chargeType and prints them, optionally with the
  order total the checkout would show.

Exit codes: 0 ok, 1 bad input or validation problems, 2 rule store failure.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape

from .charge_rules.cart import build_request
from .charge_rules.errors import RuleStoreError
from .charge_rules.evaluator import evaluate
from .charge_rules.store import RuleStore, build_rule_store
from .charge_rules.validation import validate_rule_sets
from .checkout.totals import summarize_charges
from .config import (
    DEFAULT_LOG_LEVEL,
    LOG_FILE,
    RULE_STORE_URL,
    TRACE_FILE,
    USER_FACING_ERROR,
)
from .reporting.tables import (
    charges_table,
    render_charges_markdown,
    rule_sets_table,
    summary_table,
)
from .utils.trace import build_trace_logger

console = Console()
_LOGGER = logging.getLogger("marketplace_charges")


# --------------------------------------------------------------------
# Argument parsing
# --------------------------------------------------------------------
def _add_store_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--rules-dir",
        type=str,
        default=None,
        help="Directory of YAML/JSON rule documents (default: MARKETPLACE_CHARGES_RULES_DIR or the bundled definitions).",
    )
    group.add_argument(
        "--store-url",
        type=str,
        default=RULE_STORE_URL or None,
        help="Base URL of the admin API serving charge documents (default: MARKETPLACE_CHARGES_STORE_URL).",
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="marketplace-charges",
        description=(
            "Marketplace charges – rule-based delivery, packing, rain, service and tax charges.\n\n"
            "Picks the category (or default) rule set for a cart and computes one\n"
            "charge per chargeType from the order subtotal and weather."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        default=DEFAULT_LOG_LEVEL.upper(),
        help="Log level for internal messages.",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=LOG_FILE or None,
        help="Also write log records to this file.",
    )
    parser.add_argument(
        "--trace",
        type=str,
        default=TRACE_FILE or None,
        help="Append a JSONL trace of each evaluation to this path.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p_eval = sub.add_parser("evaluate", help="Compute the charges for a cart.")
    p_eval.add_argument("--cart", required=True, help="Cart JSON file, or '-' for stdin.")
    p_eval.add_argument(
        "--weather",
        type=str,
        default=None,
        help="Override the cart's weatherCondition (rain, heavy_rain, storm; 'none' for clear).",
    )
    p_eval.add_argument("--order-date", type=str, default=None, help="Override the cart's orderDate (YYYY-MM-DD).")
    p_eval.add_argument("--coupon-discount", type=float, default=0.0, help="Coupon discount applied in the summary.")
    p_eval.add_argument("--summary", action="store_true", help="Also print the order total.")
    fmt = p_eval.add_mutually_exclusive_group()
    fmt.add_argument("--json", action="store_true", help="Print JSON instead of tables.")
    fmt.add_argument("--markdown", action="store_true", help="Print Markdown instead of tables.")
    _add_store_args(p_eval)

    p_list = sub.add_parser("list", help="List the rule sets in the store.")
    p_list.add_argument("--json", action="store_true", help="Print JSON instead of a table.")
    _add_store_args(p_list)

    p_val = sub.add_parser("validate", help="Check rule documents for skipped rules and scoping conflicts.")
    _add_store_args(p_val)

    return parser.parse_args(argv)


# --------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------
def _setup_logging(level: str, log_file: Optional[str]) -> None:
    log_handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        log_handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=log_handlers,
    )


def _read_cart(path: str) -> Dict[str, Any]:
    if path == "-":
        text = sys.stdin.read()
    else:
        text = Path(path).read_text(encoding="utf-8")
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("cart JSON must be an object")
    return payload


def _store_from_args(args: argparse.Namespace) -> RuleStore:
    # An explicit --rules-dir wins over a store URL coming from the environment.
    if args.rules_dir:
        return build_rule_store(rules_dir=args.rules_dir)
    return build_rule_store(store_url=args.store_url)


def _close_store(store: RuleStore) -> None:
    close = getattr(store, "close", None)
    if callable(close):
        close()


def _print_json(payload: Any) -> None:
    # Plain stdout so the output stays machine-readable (no rich wrapping).
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


# --------------------------------------------------------------------
# Commands
# --------------------------------------------------------------------
def cmd_evaluate(args: argparse.Namespace) -> int:
    try:
        payload = _read_cart(args.cart)
        if args.weather is not None:
            payload["weatherCondition"] = args.weather
        if args.order_date is not None:
            payload["orderDate"] = args.order_date
        request = build_request(payload)
    except (OSError, ValueError) as ex:
        # json.JSONDecodeError is a ValueError
        console.print(f"[red]Invalid cart: {escape(str(ex))}[/red]")
        return 1

    trace = build_trace_logger(args.trace)
    store = _store_from_args(args)
    try:
        result = evaluate(request, store, trace=trace)
    finally:
        _close_store(store)

    if not result.ok:
        console.print(f"[red]{USER_FACING_ERROR}[/red]")
        return 2

    if result.issues:
        _LOGGER.info("%d charge rule(s) skipped while evaluating", len(result.issues))

    summary = None
    if args.summary:
        summary = summarize_charges(result.charges, request.subtotal, coupon_discount=args.coupon_discount)

    label = result.rule_set.label if result.rule_set else ""

    if args.json:
        out: Dict[str, Any] = {
            "ruleSet": label or None,
            "charges": [c.to_dict() for c in result.charges],
        }
        if summary is not None:
            out["summary"] = summary.to_dict()
        _print_json(out)
        return 0

    if args.markdown:
        console.print(render_charges_markdown(result.charges, summary, rule_set_label=label), markup=False, soft_wrap=True)
        return 0

    if not result.charges:
        console.print("[yellow]No charge rules apply to this cart.[/yellow]")
    else:
        console.print(charges_table(result.charges, title=f"Charges ({escape(label)})"))
    if summary is not None:
        console.print(summary_table(summary))
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    try:
        rule_sets = store.list_rule_sets()
    except RuleStoreError as ex:
        _LOGGER.error("Listing rule sets failed (%s): %s", ex.kind, ex)
        console.print(f"[red]{USER_FACING_ERROR}[/red]")
        return 2
    finally:
        _close_store(store)

    if args.json:
        _print_json(
            [
                {
                    "label": rs.label,
                    "categoryId": rs.category_id,
                    "isDefault": rs.is_default,
                    "isActive": rs.is_active,
                    "rules": len(rs.rules),
                    "skipped": len(rs.issues),
                    "source": rs.source,
                }
                for rs in rule_sets
            ]
        )
        return 0

    if not rule_sets:
        console.print("[yellow]No rule sets configured.[/yellow]")
        return 0
    console.print(rule_sets_table(rule_sets))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    try:
        rule_sets = store.list_rule_sets()
    except RuleStoreError as ex:
        _LOGGER.error("Validation could not read rule sets (%s): %s", ex.kind, ex)
        console.print(f"[red]{escape(str(ex))}[/red]")
        return 2
    finally:
        _close_store(store)

    problems = validate_rule_sets(rule_sets)
    if problems:
        console.print(f"[red]{len(problems)} problem(s) found:[/red]")
        for p in problems:
            console.print(f"  - {p}", markup=False)
        return 1

    console.print(f"[green]OK[/green] – {len(rule_sets)} rule set(s), no problems.")
    return 0


COMMANDS = {
    "evaluate": cmd_evaluate,
    "list": cmd_list,
    "validate": cmd_validate,
}


# --------------------------------------------------------------------
# Main
# --------------------------------------------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    _setup_logging(args.log_level, args.log_file)
    _LOGGER.debug("Running command %s", args.command)
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
