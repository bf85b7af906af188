from typing import List, Optional

from retrace.errors import PositionError


class ResolvedPos:
    """
    A document position together with the chain of ancestors containing it.

    The path holds one ``(node, index, offset)`` triple per depth: the
    ancestor, the index of the child the position points into, and the
    absolute position at which that child starts.
    """

    __slots__ = ("pos", "path", "parent_offset", "depth")

    def __init__(self, pos: int, path: List, parent_offset: int):
        self.pos = pos
        self.path = path
        self.parent_offset = parent_offset
        self.depth = len(path) // 3 - 1

    @classmethod
    def resolve(cls, doc, pos: int) -> "ResolvedPos":
        if not (0 <= pos <= doc.content.size):
            raise PositionError(f"Position {pos} out of range")
        path = []
        start = 0
        parent_offset = pos
        node = doc
        while True:
            index, offset = node.content.find_index(parent_offset)
            rem = parent_offset - offset
            path.extend((node, index, start + offset))
            if not rem:
                break
            node = node.child(index)
            if node.is_text:
                break
            parent_offset = rem - 1
            start += offset + 1
        return cls(pos, path, parent_offset)

    def _depth(self, value: Optional[int]) -> int:
        if value is None:
            return self.depth
        if value < 0:
            return self.depth + value
        return value

    @property
    def parent(self):
        return self.node(self.depth)

    @property
    def doc(self):
        return self.node(0)

    def node(self, depth: Optional[int] = None):
        return self.path[self._depth(depth) * 3]

    def index(self, depth: Optional[int] = None) -> int:
        return self.path[self._depth(depth) * 3 + 1]

    def index_after(self, depth: Optional[int] = None) -> int:
        depth = self._depth(depth)
        return self.index(depth) + (0 if depth == self.depth and not self.text_offset else 1)

    def start(self, depth: Optional[int] = None) -> int:
        depth = self._depth(depth)
        return 0 if depth == 0 else self.path[depth * 3 - 1] + 1

    def end(self, depth: Optional[int] = None) -> int:
        depth = self._depth(depth)
        return self.start(depth) + self.node(depth).content.size

    def before(self, depth: Optional[int] = None) -> int:
        depth = self._depth(depth)
        if not depth:
            raise PositionError("There is no position before the top-level node")
        return self.pos if depth == self.depth + 1 else self.path[depth * 3 - 1]

    def after(self, depth: Optional[int] = None) -> int:
        depth = self._depth(depth)
        if not depth:
            raise PositionError("There is no position after the top-level node")
        if depth == self.depth + 1:
            return self.pos
        return self.path[depth * 3 - 1] + self.path[depth * 3].node_size

    @property
    def text_offset(self) -> int:
        return self.pos - self.path[-1]

    @property
    def node_after(self):
        parent = self.parent
        index = self.index(self.depth)
        if index == parent.child_count:
            return None
        d_off = self.pos - self.path[-1]
        child = parent.child(index)
        return child.cut(d_off) if d_off else child

    @property
    def node_before(self):
        index = self.index(self.depth)
        d_off = self.pos - self.path[-1]
        if d_off:
            return self.parent.child(index).cut(0, d_off)
        return None if index == 0 else self.parent.child(index - 1)

    def marks(self):
        """
        Marks active at this position. Between two nodes the marks of the node
        before win, minus non-inclusive marks the node after does not share.
        """
        parent = self.parent
        index = self.index()
        if parent.content.size == 0:
            return ()
        if self.text_offset:
            return parent.child(index).marks
        main = parent.maybe_child(index - 1) if index > 0 else None
        other = parent.maybe_child(index)
        if main is None:
            main, other = other, main
        marks = main.marks
        return tuple(
            mark
            for mark in marks
            if mark.type.spec.inclusive or (other is not None and mark.is_in_set(other.marks))
        )

    def shared_depth(self, pos: int) -> int:
        """The depth of the deepest ancestor that also contains `pos`."""
        for depth in range(self.depth, 0, -1):
            if self.start(depth) <= pos and self.end(depth) >= pos:
                return depth
        return 0

    def __repr__(self) -> str:
        parts = "/".join(f"{self.node(i).type.name}_{self.index(i - 1)}" for i in range(1, self.depth + 1))
        return f"{parts}:{self.parent_offset}"
