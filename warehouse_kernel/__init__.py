"""
Warehouse Kernel

Persistence, typed errors, structured logging and value objects for the
inventory movement and batch allocation engine:
- Lot-level remaining quantity tracking
- Atomic, idempotent movement recording
- Re-derivable stock projection
- Decimal-only quantity and price arithmetic
"""

__version__ = "0.1.0"
