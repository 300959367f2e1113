"""
Usage reports.

Field consumption of parts against a service order; each report debits the
engineer's stock ledger.
"""
