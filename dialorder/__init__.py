"""
                Dial Order

Multi-tenant phone-ordering backend: a voice agent answering a restaurant's
phone line calls back into this service to search the menu, draft an order,
price it and submit it to the restaurant's POS (Toast, Clover, ...).

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
