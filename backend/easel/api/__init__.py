"""
API package
"""

from .agent import router as agent_router
from .knowledge import router as knowledge_router

__all__ = ["agent_router", "knowledge_router"]
