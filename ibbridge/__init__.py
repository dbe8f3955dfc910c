"""
ibbridge - Interactive Brokers callback protocol adapter

This package correlates requests and replies over a single TWS/Gateway
connection: it allocates request ids, encodes request parameters into wire
tokens, decodes callback messages into typed events and fans them out to
subscribers.
"""

__version__ = "0.1.0"

# NOTE: Keep this module light; the public surface lives in ibbridge.api
# Example: from ibbridge.api import IBClient, EventCategory
