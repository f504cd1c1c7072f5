"""
Core Payments

Account-to-account transfers with an append-only ledger, PDF proof of
payment receipts, public verification and scheduled artifact retention.
"""

__version__ = "1.0.0"
