"""
Ledger Core - Source Package

The consistency engine behind a personal finance ledger: duplicate
detection on import, pairing of internal transfer legs, and continuous
reconciliation of the ledger's derived invariants.

DESIGN PRINCIPLES:
1. Only strictly validated records enter the ledger
2. Links are always written on both legs at once
3. No mutation is visible before it is persisted
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Core Team"
