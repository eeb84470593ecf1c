"""
Stock Kernel - inventory stock ledger and availability engine.

An append-only stock ledger with:
- Atomic adjustments (movement row + counter update + lot update, or nothing)
- Per-variant exclusivity for read-modify-write of current stock
- Derived availability and low-stock status
- Lot traceability with derived expiry status
"""

__version__ = "0.1.0"
