"""
Part catalog.

Read-only master list of requestable parts and their quantity policy.
"""
