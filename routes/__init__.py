"""
API routes module.
"""

from routes.link_check import router as link_check_router
from routes.relay import router as relay_router

__all__ = [
    "link_check_router",
    "relay_router",
]
