"""
Empire: goal, habit and daily-mission tracking service.

Users organize goals under a two-level category tree, plan them into
3-month plans made of 14-day cycles, and complete daily missions that
credit points to an append-only ledger.
"""

__version__ = "0.1.0"
