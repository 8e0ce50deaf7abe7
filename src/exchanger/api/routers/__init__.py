"""
Routing subpackage.

This module exposes the routers for listings, offers and users so they
can be imported succinctly in ``api/main.py``.
"""
from . import health, listings, offers, users  # noqa: F401
