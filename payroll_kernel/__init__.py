"""
Payroll Kernel - Worker Ledger & Period-Settlement Engine

An append-only worker money ledger with:
- Per-worker running balances, reconcilable against the entry log
- Side-effect-free draft settlements (bonus and salary runs)
- Atomic, per-worker settlement commits with period locking
- Snapshot deletion by compensating entries (never by mutation)
"""

__version__ = "0.1.0"
