"""Style knowledge base"""

from .schema import SearchHit, SearchOptions, StyleCreate, StyleRecord, StyleUpdate
from .vector_db import StyleIndex

__all__ = [
    "StyleIndex",
    "StyleRecord",
    "StyleCreate",
    "StyleUpdate",
    "SearchHit",
    "SearchOptions",
]
