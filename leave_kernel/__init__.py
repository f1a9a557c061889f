"""
Leave Kernel

Persistence and domain core of the leave approval workflow:
- Leave request store with working-day computation
- Per-employee quota ledger with an adjustment history
- Append-only workflow audit log
- Typed exceptions and structured JSON logging
"""

__version__ = "0.1.0"
