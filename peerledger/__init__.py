"""
Peer Ledger - Source Package

Account custody and peer-to-peer value transfers between user accounts.

DESIGN PRINCIPLES:
1. Both sides of a transfer move together or not at all
2. Fail early, fail with a typed result
3. One canonical record per transaction, referenced from both histories
4. Every ledger outcome is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Peer Ledger Team"
