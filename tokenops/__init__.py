"""
tokenops

Async blockchain operation queue: token and staking contract writes,
PIX deposits and withdrawals, a transaction ledger and webhook/email fan-out.
"""

__version__ = "1.0.0"
