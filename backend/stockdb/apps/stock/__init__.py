"""
Engineer stock ledger.

Per-(engineer, part) quantities plus the append-only adjustment log of credits.
"""
