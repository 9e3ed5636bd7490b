"""
Easel - agentic image workflow with style retrieval
"""

__version__ = "1.0.0"
