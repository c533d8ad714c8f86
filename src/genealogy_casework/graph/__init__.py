"""Kinship graph queries over flat relationship rows."""
from genealogy_casework.graph.engine import (
    RelationshipGraph,
    build_ancestor_tree,
    build_descendant_tree,
    detect_circular_relationships,
    find_relationship_path,
    kinship_label,
)

__all__ = [
    "RelationshipGraph",
    "build_ancestor_tree",
    "build_descendant_tree",
    "detect_circular_relationships",
    "find_relationship_path",
    "kinship_label",
]
