"""
Monthly part requests.

Engineer-owned requests moving through review, delivery and confirmation.
"""
