"""
API routes for Mission Control
"""

from .rpc import router as rpc_router
from .views import router as views_router
from .webhook import router as webhook_router

__all__ = ["rpc_router", "views_router", "webhook_router"]
