"""
Temple Ledger - Source Package

A small ledger for tracking temple income and expenses on top of a
hosted backend (authentication, tables, aggregation endpoints and
realtime change notifications).

DESIGN PRINCIPLES:
1. The backend owns the data - the client only projects it
2. Every source row appears exactly once in the unified view
3. Destructive actions need explicit confirmation
4. Provider errors are shown to the user verbatim
5. The backend layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Temple Ledger Team"
