"""
Service subpackage aggregating domain logic.

This package exposes functions for actor resolution, the listing store,
trade offers and their lifecycle, offer messaging and account management.
See individual modules for details.
"""
from . import (  # noqa: F401
    auth,
    listings,
    messaging,
    offers,
    users,
)
