"""PoolPal CLI - Main Entry Point.

Commands:
    orders     - Create, inspect and transition orders
    payments   - Create, inspect and transition payments
    revenue    - Total of completed payments
    reconcile  - Repair or report isPaid drift

Every command prints JSON on stdout. Faults are reported on stderr as
``[CODE] message`` with exit status 1.
"""

import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Optional, Tuple

import click

from . import __version__, __cli_name__
from ..config import ConfigLoader, LedgerConfig, configure_logging
from ..faults import Fault
from ..ledger import Ledger, OrderStatus, PaymentStatus


# ============================================================================
# Helpers
# ============================================================================


class ItemParam(click.ParamType):
    """``PRODUCT_ID:NAME:PRICE[:QUANTITY]`` order line."""

    name = "item"

    def convert(self, value, param, ctx):
        if isinstance(value, dict):
            return value
        parts = value.split(":")
        if len(parts) not in (3, 4):
            self.fail(f"'{value}' is not PRODUCT_ID:NAME:PRICE[:QUANTITY]", param, ctx)
        item = {"id": parts[0], "name": parts[1], "price": parts[2]}
        if len(parts) == 4:
            item["quantity"] = parts[3]
        return item


ITEM = ItemParam()


def _fail(message: str) -> None:
    click.echo(click.style(message, fg="red"), err=True)
    sys.exit(1)


def _emit(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _run(ctx: click.Context, operation: Callable[[Ledger], Awaitable[Any]]) -> Any:
    """Run ``operation`` against a ledger opened from the loaded config."""
    config: LedgerConfig = ctx.obj["config"]

    async def runner():
        async with Ledger.from_config(config) as ledger:
            return await operation(ledger)

    try:
        return asyncio.run(runner())
    except Fault as fault:
        _fail(f"[{fault.code}] {fault.message}")


# ============================================================================
# Root group
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--db', 'database_path', type=click.Path(dir_okay=False), default=None,
              help='SQLite database file')
@click.option('--backend', type=click.Choice(['memory', 'sqlite']), default=None,
              help='Document store backend')
@click.option('--env-file', type=click.Path(dir_okay=False), default='.env', show_default=True,
              help='Read POOLPAL_* settings from this file')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, database_path: Optional[str], backend: Optional[str], env_file: str, verbose: bool):
    """Order and payment ledger administration."""
    ctx.ensure_object(dict)
    try:
        config = ConfigLoader.load(
            env_file=env_file,
            defaults={"store_backend": "sqlite"},
            overrides={
                "store_backend": backend,
                "database_path": database_path,
                "log_level": "DEBUG" if verbose else None,
            },
        )
    except Fault as fault:
        _fail(f"[{fault.code}] {fault.message}")
    configure_logging(config.log_level)
    ctx.obj['config'] = config
    ctx.obj['verbose'] = verbose


# ============================================================================
# Orders
# ============================================================================


@cli.group()
def orders():
    """Create, inspect and transition orders."""
    pass


@orders.command('create')
@click.option('--item', 'items', type=ITEM, multiple=True, required=True,
              help='Order line PRODUCT_ID:NAME:PRICE[:QUANTITY] (repeatable)')
@click.option('--address', required=True, help='Shipping address')
@click.option('--method', default='', help='Payment method')
@click.option('--notes', default=None)
@click.option('--user', 'user_id', default=None, help='Owning user id')
@click.option('--with-payment', is_flag=True, help='Also create a pending payment for the total')
@click.pass_context
def orders_create(ctx, items: Tuple[dict, ...], address: str, method: str, notes: Optional[str],
                  user_id: Optional[str], with_payment: bool):
    """
    Create a pending order.

    Examples:
      poolpal orders create --item tabs:Chlorine tablets:10.00:2 --address "12 Pool Lane"
      poolpal orders create --item net:Leaf net:5.00 --address "3 Deck Rd" --method cash --with-payment
    """
    async def operation(ledger: Ledger):
        if with_payment:
            order, payment = await ledger.create_order_with_payment(
                list(items), address, method, notes, user_id,
            )
            return {"order": order.to_document(), "payment": payment.to_document()}
        order = await ledger.create_order(list(items), address, method, notes, user_id)
        return order.to_document()

    _emit(_run(ctx, operation))


@orders.command('list')
@click.option('--user', 'user_id', default=None, help='Only orders of this user')
@click.option('--paid/--unpaid', 'is_paid', default=None, help='Filter on payment state')
@click.option('--status', type=click.Choice([s.value for s in OrderStatus]), default=None)
@click.option('--recent', type=click.IntRange(min=0), default=None, help='Only the N newest orders')
@click.pass_context
def orders_list(ctx, user_id: Optional[str], is_paid: Optional[bool], status: Optional[str],
                recent: Optional[int]):
    """List orders, newest first."""
    async def operation(ledger: Ledger):
        found = await ledger.list_orders(user_id=user_id, is_paid=is_paid, status=status)
        if recent is not None:
            found = found[:recent]
        return [o.to_document() for o in found]

    _emit(_run(ctx, operation))


@orders.command('show')
@click.argument('order_id')
@click.pass_context
def orders_show(ctx, order_id: str):
    """Show one order with its payments."""
    async def operation(ledger: Ledger):
        order = await ledger.orders.require_order(order_id)
        payments = await ledger.list_payments_by_order(order_id)
        return {**order.to_document(), "payments": [p.to_document() for p in payments]}

    _emit(_run(ctx, operation))


@orders.command('status')
@click.argument('order_id')
@click.argument('status', type=click.Choice([s.value for s in OrderStatus]))
@click.option('--actor', default='admin', show_default=True)
@click.pass_context
def orders_status(ctx, order_id: str, status: str, actor: str):
    """Transition an order to STATUS."""
    order = _run(ctx, lambda ledger: ledger.set_order_status(order_id, status, actor))
    _emit(order.to_document())


@orders.command('items')
@click.argument('order_id')
@click.option('--item', 'items', type=ITEM, multiple=True, required=True,
              help='Order line PRODUCT_ID:NAME:PRICE[:QUANTITY] (repeatable)')
@click.pass_context
def orders_items(ctx, order_id: str, items: Tuple[dict, ...]):
    """Replace the items of a pending, unpaid order."""
    order = _run(ctx, lambda ledger: ledger.update_order_items(order_id, list(items)))
    _emit(order.to_document())


@orders.command('delete')
@click.argument('order_id')
@click.pass_context
def orders_delete(ctx, order_id: str):
    """Delete an order."""
    _run(ctx, lambda ledger: ledger.delete_order(order_id))
    _emit({"deleted": order_id})


@orders.command('events')
@click.argument('order_id')
@click.pass_context
def orders_events(ctx, order_id: str):
    """Show the event log of an order, oldest first."""
    async def operation(ledger: Ledger):
        return [e.to_document() for e in await ledger.list_order_events(order_id)]

    _emit(_run(ctx, operation))


# ============================================================================
# Payments
# ============================================================================


@cli.group()
def payments():
    """Create, inspect and transition payments."""
    pass


@payments.command('create')
@click.argument('order_id')
@click.argument('amount')
@click.option('--method', required=True, help='Payment method')
@click.option('--notes', default=None)
@click.option('--completed', is_flag=True, help='Record the payment as already completed')
@click.pass_context
def payments_create(ctx, order_id: str, amount: str, method: str, notes: Optional[str], completed: bool):
    """
    Create a payment of AMOUNT against ORDER_ID.

    Examples:
      poolpal payments create order_1718000000000_3f9a1c 25.00 --method cash
      poolpal payments create order_1718000000000_3f9a1c 25.00 --method bank_transfer --completed
    """
    status = PaymentStatus.COMPLETED if completed else PaymentStatus.PENDING
    payment = _run(ctx, lambda ledger: ledger.create_payment(order_id, amount, method, notes, status=status))
    _emit(payment.to_document())


@payments.command('list')
@click.option('--order', 'order_id', default=None, help='Only payments of this order')
@click.option('--user', 'user_id', default=None, help='Only payments of this user')
@click.option('--reference', default=None, help='Look up by reference code')
@click.pass_context
def payments_list(ctx, order_id: Optional[str], user_id: Optional[str], reference: Optional[str]):
    """List payments, newest first."""
    async def operation(ledger: Ledger):
        if reference is not None:
            payment = await ledger.find_payment_by_reference(reference)
            found = [payment] if payment is not None else []
        elif order_id is not None:
            found = await ledger.list_payments_by_order(order_id)
        elif user_id is not None:
            found = await ledger.list_payments_by_user(user_id)
        else:
            found = await ledger.list_all_payments()
        return [p.to_document() for p in found]

    _emit(_run(ctx, operation))


@payments.command('show')
@click.argument('payment_id')
@click.pass_context
def payments_show(ctx, payment_id: str):
    """Show one payment."""
    payment = _run(ctx, lambda ledger: ledger.payments.require_payment(payment_id))
    _emit(payment.to_document())


@payments.command('status')
@click.argument('payment_id')
@click.argument('status', type=click.Choice([s.value for s in PaymentStatus]))
@click.pass_context
def payments_status(ctx, payment_id: str, status: str):
    """Transition a payment to STATUS and reconcile its order."""
    async def operation(ledger: Ledger):
        payment = await ledger.set_payment_status(payment_id, status)
        order = await ledger.get_order(payment.order_id)
        return {
            "payment": payment.to_document(),
            "order": order.to_document() if order is not None else None,
        }

    _emit(_run(ctx, operation))


@payments.command('delete')
@click.argument('payment_id')
@click.pass_context
def payments_delete(ctx, payment_id: str):
    """Delete a payment that is not completed."""
    _run(ctx, lambda ledger: ledger.delete_payment(payment_id))
    _emit({"deleted": payment_id})


# ============================================================================
# Reporting and remediation
# ============================================================================


@cli.command()
@click.pass_context
def revenue(ctx):
    """Sum of completed payment amounts."""
    total = _run(ctx, lambda ledger: ledger.total_revenue())
    _emit({"totalRevenue": str(total)})


@cli.command()
@click.argument('order_id', required=False)
@click.pass_context
def reconcile(ctx, order_id: Optional[str]):
    """
    Repair isPaid drift for ORDER_ID, or report drift across all orders.

    Examples:
      poolpal reconcile
      poolpal reconcile order_1718000000000_3f9a1c
    """
    async def operation(ledger: Ledger):
        if order_id is not None:
            return (await ledger.reconcile_order(order_id)).to_document()
        return {
            "inconsistentOrders": await ledger.find_inconsistencies(),
            "danglingPayments": await ledger.find_dangling_payments(),
        }

    _emit(_run(ctx, operation))


def main():
    """Entry point for `poolpal` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
