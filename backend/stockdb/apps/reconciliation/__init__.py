"""
Reconciliation.

Ties request completion to stock credits inside one transaction.
"""
