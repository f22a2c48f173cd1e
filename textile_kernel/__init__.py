"""
Textile Kernel - inventory valuation and document sequencing core

Transactional back-office core for a garment manufacturer with:
- Moving-average costing per stock item
- Append-only stock movement ledger with running balances
- Gapless per-period document numbering
- Material requirement planning for work orders
"""

__version__ = "0.1.0"
