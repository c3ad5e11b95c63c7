"""
PoolPal admin CLI.

The `poolpal` command inspects and operates the order/payment ledger.

Usage:
    poolpal orders create --item tabs:Chlorine tablets:10.00:2 --address "12 Pool Lane"
    poolpal orders list --unpaid
    poolpal payments create <order_id> 25.00 --method cash
    poolpal payments status <payment_id> completed
    poolpal revenue
    poolpal reconcile
"""

__version__ = "1.0.0"
__cli_name__ = "poolpal"
