"""
Engine Errors
=============

Exception taxonomy shared by the rule, query and traversal engines.

- StructuralViolation: a required structural invariant does not hold.
  Aborts the enclosing rewrite/query call; never retried.
- NotFound: a navigation or id lookup could not be satisfied within the
  bounds of the graph. Predicates that want to branch instead of failing
  use the boolean forms (`has_ancestor`, `has_descendant`).
"""


class PlantGraphError(Exception):
    """Base class for all engine errors."""


class StructuralViolation(PlantGraphError):
    """Raised when a graph (or a user predicate) detects a broken invariant."""


class NotFound(PlantGraphError, LookupError):
    """Raised when a node, ancestor or descendant cannot be located."""
