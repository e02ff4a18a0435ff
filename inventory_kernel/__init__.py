"""
Inventory Kernel

A multi-tenant, append-only inventory ledger with:
- Immutable movement history
- Per-location stock levels with reservation accounting
- Batch (lot) tracking with FIFO/LIFO/FEFO ordering
- Pessimistic and optimistic concurrency control
"""

__version__ = "0.1.0"
