"""
MindScribe content graph.

Relationship inference and knowledge graph maintenance for saved web content.
"""

from .models import ContentItem, Relationship, RelationshipType

__version__ = "0.1.0"

__all__ = [
    "ContentItem",
    "Relationship",
    "RelationshipType",
]
