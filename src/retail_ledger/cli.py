"""Command-line entry points for the retail ledger.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the transactions consumed by the engine. Keeping
the CLI thin lets tests and scripts reuse the same parser configuration.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log
from .constants import PaymentMethod, TransactionStatus, TransactionType
from .models import ZERO, LineItem, Transaction
from .unit_of_work import PartialWriteError


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def decimal_arg(raw: str) -> Decimal:
    """argparse ``type`` for money and quantities."""
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {raw!r}") from exc
    if not value.is_finite():
        raise argparse.ArgumentTypeError(f"invalid number: {raw!r}")
    return value


def line_item_arg(raw: str) -> LineItem:
    """Parse ``PRODUCT:QTY:PRICE[:DISCOUNT]`` into a :class:`LineItem`."""
    parts = raw.split(":")
    if len(parts) not in (3, 4) or not parts[0].strip():
        raise argparse.ArgumentTypeError(f"expected PRODUCT:QTY:PRICE[:DISCOUNT], got {raw!r}")
    quantity, price = decimal_arg(parts[1]), decimal_arg(parts[2])
    discount = decimal_arg(parts[3]) if len(parts) == 4 else ZERO
    return LineItem(product_id=parts[0].strip(), quantity=quantity, price=price, discount=discount)


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledger-cli",
        description="Command-line tools for the retail ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the working directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and payments."""
    specs = {
        "sale": register_sale_command(subparsers),
        "receive-po": register_receive_po_command(subparsers),
        "customer-payment": register_customer_payment_command(subparsers),
        "vendor-payment": register_vendor_payment_command(subparsers),
        "expense": register_expense_command(subparsers),
        "transfer": register_transfer_command(subparsers),
        "close-account": register_close_account_command(subparsers),
        "amend": register_amend_command(subparsers),
        "delete-tx": register_delete_command(subparsers),
        "assign-category": register_assign_category_command(subparsers),
        "open-day": register_open_day_command(subparsers),
        "close-day": register_close_day_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "stock": _simple_command("stock", "Display stock per product.", run_stock_report),
        "low-stock": _simple_command("low-stock", "List products at or below their threshold.", run_low_stock_report),
        "debts": _simple_command("debts", "Display outstanding customer credit.", run_debts_report),
        "payables": _simple_command("payables", "Display amounts owed to vendors.", run_payables_report),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _simple_command(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def _add_payment_method(parser: argparse.ArgumentParser, default: Optional[str] = PaymentMethod.CASH.value) -> None:
    parser.add_argument(
        "--payment-method",
        choices=[member.value for member in PaymentMethod],
        default=default,
    )


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Complete a sale, or save it as a draft with --draft."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=line_item_arg,
            required=True,
            help="Line item as PRODUCT:QTY:PRICE[:DISCOUNT]; repeat for more lines.",
        )
        parser.add_argument("--amount", type=decimal_arg, default=None, help="Defaults to the line total.")
        _add_payment_method(parser)
        parser.add_argument("--paid-amount", type=decimal_arg, default=None)
        parser.add_argument("--balance-due", type=decimal_arg, default=ZERO)
        parser.add_argument("--customer-id", default=None)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--branch", default=None)
        parser.add_argument("--transaction-id", default="", help="Id of a saved draft to complete.")
        parser.add_argument("--description", default=None)
        parser.add_argument("--draft", action="store_true", help="Save without side effects.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_receive_po_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``receive-po``."""
    name = "receive-po"
    help_text = "Receive a pending purchase order into stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--po-id", required=True)
        parser.add_argument("--branch", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_receive_po)


def register_customer_payment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``customer-payment``."""
    name = "customer-payment"
    help_text = "Record a payment received from a customer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--customer-id", required=True)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        _add_payment_method(parser)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--parent-tx-id", default=None, help="Invoice this payment settles.")
        parser.add_argument("--branch", default=None)
        parser.add_argument("--description", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_customer_payment)


def register_vendor_payment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``vendor-payment``."""
    name = "vendor-payment"
    help_text = "Settle a vendor balance, or record a direct charge with --charge."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--vendor-id", required=True)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        _add_payment_method(parser)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--charge", action="store_true", help="Record a PURCHASE instead of a settlement.")
        parser.add_argument("--branch", default=None)
        parser.add_argument("--description", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_vendor_payment)


def register_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``expense``."""
    name = "expense"
    help_text = "Record an expense paid from an account."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        _add_payment_method(parser)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--branch", default=None)
        parser.add_argument("--description", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_expense)


def register_transfer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``transfer``."""
    name = "transfer"
    help_text = "Move money between two accounts."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--from-account", required=True)
        parser.add_argument("--to-account", required=True)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--branch", default=None)
        parser.add_argument("--description", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_transfer)


def register_close_account_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``close-account``."""
    name = "close-account"
    help_text = "Merge an account's balance into cash and delete it."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--account-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_close_account)


def register_amend_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``amend``."""
    name = "amend"
    help_text = "Amend a stored transaction; omitted options keep their value."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.add_argument("--amount", type=decimal_arg, default=None)
        parser.add_argument("--paid-amount", type=decimal_arg, default=None)
        parser.add_argument("--balance-due", type=decimal_arg, default=None)
        _add_payment_method(parser, default=None)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--customer-id", default=None)
        parser.add_argument("--vendor-id", default=None)
        parser.add_argument("--branch", default=None)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=line_item_arg,
            default=None,
            help="Replacement line items as PRODUCT:QTY:PRICE[:DISCOUNT].",
        )
        parser.add_argument("--description", default=None)
        parser.add_argument("--complete", action="store_true", help="Complete a draft sale.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_amend)


def register_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-tx``."""
    name = "delete-tx"
    help_text = "Delete a transaction and reverse its side effects."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete)


def register_assign_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``assign-category``."""
    name = "assign-category"
    help_text = "Move a product to a category and store its kind."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--category-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_assign_category)


def register_open_day_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``open-day``."""
    name = "open-day"
    help_text = "Open the cash session for a branch."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--opening-balance", type=decimal_arg, required=True)
        parser.add_argument("--branch", default=None)
        parser.add_argument("--date", default=None, help="ISO date; defaults to today (UTC).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_open_day)


def register_close_day_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``close-day``."""
    name = "close-day"
    help_text = "Close the cash session for a branch with the counted cash."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--actual-closing", type=decimal_arg, required=True)
        parser.add_argument("--branch", default=None)
        parser.add_argument("--date", default=None, help="ISO date; defaults to today (UTC).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_close_day)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def line_total(items: Iterable[LineItem]) -> Decimal:
    return sum((item.price * item.quantity - item.discount for item in items), ZERO)


def translate_sale(args: argparse.Namespace) -> Transaction:
    """Translate CLI args into a SALE transaction."""
    items = tuple(args.items)
    return Transaction(
        transaction_id=args.transaction_id or "",
        transaction_type=TransactionType.SALE,
        amount=args.amount if args.amount is not None else line_total(items),
        payment_method=PaymentMethod(args.payment_method),
        status=TransactionStatus.DRAFT if args.draft else TransactionStatus.COMPLETED,
        paid_amount=args.paid_amount,
        balance_due=args.balance_due,
        account_id=args.account_id,
        customer_id=args.customer_id,
        items=items,
        branch_id=args.branch,
        description=args.description,
    )


def translate_customer_payment(args: argparse.Namespace) -> Transaction:
    return Transaction(
        transaction_id="",
        transaction_type=TransactionType.CREDIT_PAYMENT,
        amount=args.amount,
        payment_method=PaymentMethod(args.payment_method),
        account_id=args.account_id,
        customer_id=args.customer_id,
        parent_tx_id=args.parent_tx_id,
        branch_id=args.branch,
        description=args.description,
    )


def translate_vendor_payment(args: argparse.Namespace) -> Transaction:
    tx_type = TransactionType.PURCHASE if args.charge else TransactionType.CREDIT_PAYMENT
    return Transaction(
        transaction_id="",
        transaction_type=tx_type,
        amount=args.amount,
        payment_method=PaymentMethod(args.payment_method),
        account_id=args.account_id,
        vendor_id=args.vendor_id,
        branch_id=args.branch,
        description=args.description,
    )


def translate_expense(args: argparse.Namespace) -> Transaction:
    return Transaction(
        transaction_id="",
        transaction_type=TransactionType.EXPENSE,
        amount=args.amount,
        payment_method=PaymentMethod(args.payment_method),
        account_id=args.account_id,
        branch_id=args.branch,
        description=args.description,
    )


def translate_transfer(args: argparse.Namespace) -> Transaction:
    return Transaction(
        transaction_id="",
        transaction_type=TransactionType.TRANSFER,
        amount=args.amount,
        payment_method=PaymentMethod.BANK,
        account_id=args.from_account,
        destination_account_id=args.to_account,
        branch_id=args.branch,
        description=args.description,
    )


def translate_amend(stored: Transaction, args: argparse.Namespace) -> Transaction:
    """Overlay the supplied options on ``stored``."""
    changes = {
        "amount": args.amount,
        "paid_amount": args.paid_amount,
        "balance_due": args.balance_due,
        "payment_method": PaymentMethod(args.payment_method) if args.payment_method else None,
        "account_id": args.account_id,
        "customer_id": args.customer_id,
        "vendor_id": args.vendor_id,
        "branch_id": args.branch,
        "items": tuple(args.items) if args.items else None,
        "description": args.description,
    }
    amended = replace(stored, **{key: value for key, value in changes.items() if value is not None})
    if args.items and args.amount is None:
        amended = replace(amended, amount=line_total(amended.items))
    if args.complete:
        amended = replace(amended, status=TransactionStatus.COMPLETED)
    return amended


def _report(outcome: object, what: str) -> int:
    if outcome is None:
        print(f"No change: {what}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the engine."""
    tx = translate_sale(args)
    if args.draft:
        result = core_logic.save_draft_sale(context, tx)
    else:
        result = core_logic.complete_sale(context, tx)
    if result is not None:
        print(result.transaction_id)
    return _report(result, "sale")


def run_receive_po(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.receive_purchase_order(context, args.po_id, branch=args.branch)
    if result is not None:
        print(result.transaction_id)
    return _report(result, f"purchase order '{args.po_id}'")


def run_customer_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.record_customer_payment(context, translate_customer_payment(args))
    print(result.transaction_id)
    return 0


def run_vendor_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.record_vendor_payment(context, translate_vendor_payment(args))
    print(result.transaction_id)
    return 0


def run_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.record_expense(context, translate_expense(args))
    print(result.transaction_id)
    return 0


def run_transfer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.record_transfer(context, translate_transfer(args))
    print(result.transaction_id)
    return 0


def run_close_account(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.close_account(context, args.account_id)
    return _report(result, f"account '{args.account_id}'")


def run_amend(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the amend workflow; an unknown id is reported, not raised."""
    stored = context.snapshot.transaction(args.transaction_id)
    if stored is None:
        return _report(None, f"transaction '{args.transaction_id}' not found")
    result = core_logic.update_transaction(context, translate_amend(stored, args))
    return _report(result, f"transaction '{args.transaction_id}'")


def run_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.delete_transaction(context, args.transaction_id)
    return _report(result, f"transaction '{args.transaction_id}'")


def run_assign_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.assign_category(context, args.product_id, args.category_id)
    return _report(result, f"product '{args.product_id}'")


def run_open_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.open_day(context, args.opening_balance, branch=args.branch, date=args.date)
    if result is not None:
        print(result.session_id)
    return _report(result, "day session")


def run_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.close_day(context, args.actual_closing, branch=args.branch, date=args.date)
    if result is not None:
        print(f"{result.session_id}\texpected={result.expected_closing}\tactual={result.actual_closing}")
    return _report(result, "day session")


def _print_table(rows: Mapping[str, Decimal]) -> None:
    for key, value in sorted(rows.items()):
        print(f"{key}\t{value}")


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    _print_table(core_logic.calculate_inventory(context.snapshot))
    return 0


def run_low_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for product in core_logic.low_stock_products(context.snapshot):
        print(f"{product.product_id}\t{product.stock}\t(threshold {product.low_stock_threshold})")
    return 0


def run_debts_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the outstanding debts reporting workflow."""
    _print_table(core_logic.calculate_outstanding_debts(context.snapshot))
    for customer in core_logic.customers_over_limit(context.snapshot):
        print(f"OVER LIMIT\t{customer.customer_id}\t{customer.total_credit} > {customer.credit_limit}")
    return 0


def run_payables_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    _print_table(core_logic.calculate_vendor_payables(context.snapshot))
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, PartialWriteError):
        log.error("%s; applied: %s", error, ", ".join(str(write) for write in error.applied) or "none")
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
