"""
Exchanger: a peer-to-peer bartering marketplace backend.

Users list items, browse each other's listings, propose trade offers that
bundle their own listings, negotiate in a message thread attached to each
offer and move offers through a lifecycle that ends in a completed trade.
"""

__version__ = "0.1.0"
