"""
Node Types and Fragments
========================

User-defined node payloads and the small algebra used to assemble them
into graph fragments.

Node variants are pydantic models: subclass `Node` and declare fields.
Payload fields are validated on construction and on assignment. A variant
becomes immutable by declaring `model_config = ConfigDict(frozen=True)`.

Fragments are built with two operators:

- `a + b` concatenates: `b` hangs below `a`'s insertion point and the
  insertion point moves to the end of `b`.
- `a + (b, c)` branches: `b` and `c` hang below `a`'s insertion point and
  the insertion point does not move.

Example
-------
>>> class Internode(Node):
...     length: float = 0.1
>>> class Meristem(Node):
...     pass
>>> class Bud(Node):
...     pass
>>> fragment = Internode() + (Bud(),) + Internode() + Meristem()
>>> len(fragment)
4
"""

from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict


class Node(BaseModel):
    """
    Base class for node payloads.

    Subclasses are the node variants of a model (Meristem, Internode,
    Leaf, ...). Identity lives in the graph, not on the payload.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    def label(self) -> str:
        """Display label used by exports. Override per variant."""
        return type(self).__name__

    def __add__(self, other: Any) -> "Fragment":
        return Fragment.of(self) + other

    def __radd__(self, other: Any) -> "Fragment":
        # Only `0 + node` is meaningful; it lets `sum(...)` build chains.
        if isinstance(other, int) and other == 0:
            return Fragment.of(self)
        return NotImplemented


class Fragment:
    """
    An ordered tree of payloads with a root and an insertion point.

    Payloads are stored in attachment order; `parents[i]` is the index of
    the parent of payload `i` (-1 for the root). Children of a payload keep
    the order in which they were attached. Fragments are immutable: every
    operator returns a new fragment.
    """

    __slots__ = ("_payloads", "_parents", "_insertion")

    def __init__(
        self,
        payloads: tuple[Node, ...] = (),
        parents: tuple[int, ...] = (),
        insertion: int = 0,
    ):
        if len(payloads) != len(parents):
            raise ValueError("payloads and parents must have the same length")
        if payloads and not 0 <= insertion < len(payloads):
            raise ValueError(f"insertion point {insertion} is out of range")
        self._payloads = tuple(payloads)
        self._parents = tuple(parents)
        self._insertion = insertion if payloads else 0

    @classmethod
    def of(cls, value: Any) -> "Fragment":
        """
        Coerce a node, a fragment or None into a fragment.

        Raises
        ------
        TypeError
            If the value is none of the accepted types.
        """
        if value is None:
            return cls()
        if isinstance(value, Fragment):
            return value
        if isinstance(value, Node):
            return cls((value,), (-1,), 0)
        raise TypeError(
            f"Expected a Node, a Fragment or None, got {type(value).__name__}"
        )

    @property
    def is_empty(self) -> bool:
        return not self._payloads

    @property
    def root(self) -> Optional[Node]:
        """Payload at the root of the fragment (None when empty)."""
        return self._payloads[0] if self._payloads else None

    @property
    def insertion(self) -> int:
        """Index of the payload where the next concatenation attaches."""
        return self._insertion

    @property
    def payloads(self) -> tuple[Node, ...]:
        return self._payloads

    @property
    def parents(self) -> tuple[int, ...]:
        return self._parents

    def __len__(self) -> int:
        return len(self._payloads)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._payloads)

    def __add__(self, other: Any) -> "Fragment":
        if isinstance(other, (tuple, list)):
            return self._branch(other)
        if isinstance(other, (Node, Fragment)) or other is None:
            return self._chain(Fragment.of(other))
        return NotImplemented

    def __radd__(self, other: Any) -> "Fragment":
        if isinstance(other, int) and other == 0:
            return self
        return NotImplemented

    def _attach(self, child: "Fragment") -> tuple[tuple[Node, ...], tuple[int, ...], int]:
        """Hang `child` below the insertion point; return the merged arrays."""
        offset = len(self._payloads)
        parents = list(self._parents)
        for index, parent in enumerate(child._parents):
            parents.append(self._insertion if index == 0 else parent + offset)
        return self._payloads + child._payloads, tuple(parents), offset

    def _chain(self, other: "Fragment") -> "Fragment":
        if other.is_empty:
            return self
        if self.is_empty:
            return other
        payloads, parents, offset = self._attach(other)
        return Fragment(payloads, parents, offset + other._insertion)

    def _branch(self, branches: tuple | list) -> "Fragment":
        if self.is_empty:
            raise ValueError("Cannot attach branches to an empty fragment")
        result = self
        for branch in branches:
            if isinstance(branch, (tuple, list)):
                raise TypeError("Branches must be nodes or fragments, not nested sequences")
            fragment = Fragment.of(branch)
            if fragment.is_empty:
                continue
            payloads, parents, _ = result._attach(fragment)
            result = Fragment(payloads, parents, result._insertion)
        return result

    def __repr__(self) -> str:
        labels = ", ".join(payload.label() for payload in self._payloads)
        return f"Fragment([{labels}], insertion={self._insertion})"
