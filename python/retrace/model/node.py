"""
Immutable document values: Node, TextNode, Fragment and Slice.

Positions count tokens: entering or leaving a non-leaf node is one token,
a leaf node is one token and each character of text is one token. A
document's top-level positions therefore run from 0 to ``doc.content.size``.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from retrace.errors import PositionError, SchemaError
from retrace.model.mark import Mark
from retrace.model.resolvedpos import ResolvedPos


class Fragment:
    """An immutable sequence of sibling nodes."""

    __slots__ = ("content", "size")

    empty: "Fragment"

    def __init__(self, content: List["Node"], size: Optional[int] = None):
        self.content = content
        self.size = size if size is not None else sum(child.node_size for child in content)

    # --- Construction ---

    @staticmethod
    def from_array(array: List["Node"]) -> "Fragment":
        """Build a fragment, joining adjacent text nodes that carry the same marks."""
        if not array:
            return Fragment.empty
        joined = None
        size = 0
        for i, node in enumerate(array):
            size += node.node_size
            if i and node.is_text and array[i - 1].same_markup(node):
                if joined is None:
                    joined = list(array[:i])
                joined[-1] = node.with_text(joined[-1].text + node.text)
            elif joined is not None:
                joined.append(node)
        return Fragment(joined if joined is not None else list(array), size)

    @staticmethod
    def from_(nodes: Any) -> "Fragment":
        if nodes is None:
            return Fragment.empty
        if isinstance(nodes, Fragment):
            return nodes
        if isinstance(nodes, Node):
            return Fragment([nodes], nodes.node_size)
        if isinstance(nodes, (list, tuple)):
            return Fragment.from_array(list(nodes))
        raise TypeError(f"Can not convert {nodes!r} to a Fragment")

    # --- Access ---

    def __iter__(self):
        return iter(self.content)

    @property
    def child_count(self) -> int:
        return len(self.content)

    def child(self, index: int) -> "Node":
        if index < 0 or index >= len(self.content):
            raise PositionError(f"Index {index} out of range for {self}")
        return self.content[index]

    def maybe_child(self, index: int) -> Optional["Node"]:
        if 0 <= index < len(self.content):
            return self.content[index]
        return None

    @property
    def first_child(self) -> Optional["Node"]:
        return self.content[0] if self.content else None

    @property
    def last_child(self) -> Optional["Node"]:
        return self.content[-1] if self.content else None

    def find_index(self, pos: int, round: int = -1) -> Tuple[int, int]:
        """
        Find the child index at `pos` and the offset at which that child
        starts. A position on a boundary rounds to the following child unless
        `round` is positive and the position lies inside a child.
        """
        if pos == 0:
            return 0, pos
        if pos == self.size:
            return len(self.content), pos
        if pos > self.size or pos < 0:
            raise PositionError(f"Position {pos} outside of fragment ({self})")
        cur_pos = 0
        for i, cur in enumerate(self.content):
            end = cur_pos + cur.node_size
            if end >= pos:
                if end == pos or round > 0:
                    return i + 1, end
                return i, cur_pos
            cur_pos = end
        raise PositionError(f"Position {pos} outside of fragment ({self})")

    # --- Traversal ---

    def nodes_between(self, from_: int, to: int, f: Callable, node_start: int = 0, parent=None):
        """
        Call `f(node, pos, parent, index)` for every node overlapping
        [from_, to). Returning False from `f` skips that node's children.
        """
        pos = 0
        for i, child in enumerate(self.content):
            if pos >= to:
                break
            end = pos + child.node_size
            if end > from_ and f(child, node_start + pos, parent, i) is not False and child.content.size:
                start = pos + 1
                child.nodes_between(
                    max(0, from_ - start), min(child.content.size, to - start), f, node_start + start
                )
            pos = end

    def descendants(self, f: Callable):
        self.nodes_between(0, self.size, f)

    def text_between(self, from_: int, to: int, block_separator: str = "", leaf_text: Optional[str] = None) -> str:
        parts = []
        first = [True]

        def visit(node, pos, parent, index):
            if node.is_text:
                node_text = node.text[max(from_, pos) - pos : to - pos]
            elif not node.is_leaf:
                node_text = ""
            else:
                node_text = leaf_text or ""
            if ((node.is_block and node.is_leaf and node_text) or node.is_textblock) and block_separator:
                if first[0]:
                    first[0] = False
                else:
                    parts.append(block_separator)
            parts.append(node_text)

        self.nodes_between(from_, to, visit)
        return "".join(parts)

    # --- Derivation ---

    def append(self, other: "Fragment") -> "Fragment":
        if not other.size:
            return self
        if not self.size:
            return other
        last, first = self.last_child, other.first_child
        content = list(self.content)
        i = 0
        if last.is_text and last.same_markup(first):
            content[-1] = last.with_text(last.text + first.text)
            i = 1
        content.extend(other.content[i:])
        return Fragment(content, self.size + other.size)

    def cut(self, from_: int, to: Optional[int] = None) -> "Fragment":
        if to is None:
            to = self.size
        if from_ == 0 and to == self.size:
            return self
        result = []
        size = 0
        if to > from_:
            pos = 0
            for child in self.content:
                if pos >= to:
                    break
                end = pos + child.node_size
                if end > from_:
                    if pos < from_ or end > to:
                        if child.is_text:
                            child = child.cut(max(0, from_ - pos), min(len(child.text), to - pos))
                        else:
                            child = child.cut(max(0, from_ - pos - 1), min(child.content.size, to - pos - 1))
                    result.append(child)
                    size += child.node_size
                pos = end
        return Fragment(result, size)

    def cut_by_index(self, from_: int, to: int) -> "Fragment":
        if from_ == to:
            return Fragment.empty
        if from_ == 0 and to == len(self.content):
            return self
        return Fragment(self.content[from_:to])

    def replace_child(self, index: int, node: "Node") -> "Fragment":
        current = self.content[index]
        if current is node:
            return self
        content = list(self.content)
        content[index] = node
        return Fragment(content, self.size + node.node_size - current.node_size)

    def add_to_start(self, node: "Node") -> "Fragment":
        return Fragment([node] + self.content, self.size + node.node_size)

    def add_to_end(self, node: "Node") -> "Fragment":
        return Fragment(self.content + [node], self.size + node.node_size)

    # --- Comparison ---

    def __eq__(self, other) -> bool:
        if self is other:
            return True
        if not isinstance(other, Fragment):
            return NotImplemented
        if len(self.content) != len(other.content):
            return False
        return all(a == b for a, b in zip(self.content, other.content))

    __hash__ = None

    def find_diff_start(self, other: "Fragment", pos: int = 0) -> Optional[int]:
        """First position at which this fragment and `other` differ, or None if equal."""
        return _find_diff_start(self, other, pos)

    def find_diff_end(self, other: "Fragment", pos: Optional[int] = None, other_pos: Optional[int] = None):
        """
        Scan backwards for the last difference. Returns a dict with the end
        position in each fragment (``{"a": ..., "b": ...}``), or None if equal.
        """
        if pos is None:
            pos = self.size
        if other_pos is None:
            other_pos = other.size
        return _find_diff_end(self, other, pos, other_pos)

    # --- Serialisation ---

    def to_json(self) -> Optional[List[Dict[str, Any]]]:
        if not self.content:
            return None
        return [child.to_json() for child in self.content]

    def to_string_inner(self) -> str:
        return ", ".join(repr(child) for child in self.content)

    def __repr__(self) -> str:
        return f"<{self.to_string_inner()}>"


Fragment.empty = Fragment([], 0)


def _find_diff_start(a: Fragment, b: Fragment, pos: int) -> Optional[int]:
    i = 0
    while True:
        if i == a.child_count or i == b.child_count:
            return None if a.child_count == b.child_count else pos
        child_a, child_b = a.content[i], b.content[i]
        i += 1
        if child_a is child_b:
            pos += child_a.node_size
            continue
        if not child_a.same_markup(child_b):
            return pos
        if child_a.is_text and child_a.text != child_b.text:
            limit = min(len(child_a.text), len(child_b.text))
            j = 0
            while j < limit and child_a.text[j] == child_b.text[j]:
                j += 1
            return pos + j
        if child_a.content.size or child_b.content.size:
            inner = _find_diff_start(child_a.content, child_b.content, pos + 1)
            if inner is not None:
                return inner
        pos += child_a.node_size


def _find_diff_end(a: Fragment, b: Fragment, pos_a: int, pos_b: int):
    i_a, i_b = a.child_count, b.child_count
    while True:
        if i_a == 0 or i_b == 0:
            return None if i_a == i_b else {"a": pos_a, "b": pos_b}
        i_a -= 1
        i_b -= 1
        child_a, child_b = a.content[i_a], b.content[i_b]
        size = child_a.node_size
        if child_a is child_b:
            pos_a -= size
            pos_b -= size
            continue
        if not child_a.same_markup(child_b):
            return {"a": pos_a, "b": pos_b}
        if child_a.is_text and child_a.text != child_b.text:
            same = 0
            min_size = min(len(child_a.text), len(child_b.text))
            while same < min_size and child_a.text[-same - 1] == child_b.text[-same - 1]:
                same += 1
                pos_a -= 1
                pos_b -= 1
            return {"a": pos_a, "b": pos_b}
        if child_a.content.size or child_b.content.size:
            inner = _find_diff_end(child_a.content, child_b.content, pos_a - 1, pos_b - 1)
            if inner is not None:
                return inner
        pos_a -= size
        pos_b -= size


class Node:
    """
    A node in a document tree. Nodes are immutable values: every derivation
    (cut, replace, mark, copy) returns a new node and shares unchanged parts.
    """

    __slots__ = ("type", "attrs", "content", "marks")

    text: Optional[str] = None

    def __init__(self, node_type, attrs: Dict[str, Any], content: Optional[Fragment] = None, marks=Mark.none):
        self.type = node_type
        self.attrs = attrs
        self.content = content if content is not None else Fragment.empty
        self.marks = tuple(marks)

    # --- Type shortcuts ---

    @property
    def is_text(self) -> bool:
        return self.type.is_text

    @property
    def is_block(self) -> bool:
        return self.type.is_block

    @property
    def is_inline(self) -> bool:
        return self.type.is_inline

    @property
    def is_textblock(self) -> bool:
        return self.type.is_textblock

    @property
    def inline_content(self) -> bool:
        return self.type.inline_content

    @property
    def is_leaf(self) -> bool:
        return self.type.is_leaf

    @property
    def is_atom(self) -> bool:
        return self.type.is_atom

    # --- Size and children ---

    @property
    def node_size(self) -> int:
        return 1 if self.is_leaf else self.content.size + 2

    @property
    def child_count(self) -> int:
        return self.content.child_count

    def child(self, index: int) -> "Node":
        return self.content.child(index)

    def maybe_child(self, index: int) -> Optional["Node"]:
        return self.content.maybe_child(index)

    @property
    def first_child(self) -> Optional["Node"]:
        return self.content.first_child

    @property
    def last_child(self) -> Optional["Node"]:
        return self.content.last_child

    def __iter__(self):
        return iter(self.content)

    # --- Traversal ---

    def nodes_between(self, from_: int, to: int, f: Callable, start_pos: int = 0):
        self.content.nodes_between(from_, to, f, start_pos, self)

    def descendants(self, f: Callable):
        self.nodes_between(0, self.content.size, f)

    @property
    def text_content(self) -> str:
        return self.text_between(0, self.content.size, "")

    def text_between(self, from_: int, to: int, block_separator: str = "", leaf_text: Optional[str] = None) -> str:
        return self.content.text_between(from_, to, block_separator, leaf_text)

    def node_at(self, pos: int) -> Optional["Node"]:
        """The node starting directly after `pos`, or None."""
        node = self
        while True:
            index, offset = node.content.find_index(pos)
            node = node.maybe_child(index)
            if node is None:
                return None
            if offset == pos or node.is_text:
                return node
            pos -= offset + 1

    # --- Comparison ---

    def __eq__(self, other) -> bool:
        if self is other:
            return True
        if not isinstance(other, Node):
            return NotImplemented
        return self.same_markup(other) and self.text == other.text and self.content == other.content

    __hash__ = None

    def same_markup(self, other: "Node") -> bool:
        return self.has_markup(other.type, other.attrs, other.marks)

    def has_markup(self, node_type, attrs: Optional[Dict[str, Any]] = None, marks=None) -> bool:
        return (
            self.type is node_type
            and self.attrs == (attrs if attrs is not None else node_type.compute_attrs(None))
            and Mark.same_set(self.marks, marks or Mark.none)
        )

    # --- Derivation ---

    def copy(self, content: Optional[Fragment] = None) -> "Node":
        if content is None or content is self.content:
            return self
        return Node(self.type, self.attrs, content, self.marks)

    def mark(self, marks) -> "Node":
        marks = tuple(marks)
        if Mark.same_set(marks, self.marks):
            return self
        return Node(self.type, self.attrs, self.content, marks)

    def cut(self, from_: int, to: Optional[int] = None) -> "Node":
        if to is None:
            to = self.content.size
        if from_ == 0 and to == self.content.size:
            return self
        return self.copy(self.content.cut(from_, to))

    def slice(self, from_: int, to: Optional[int] = None, include_parents: bool = False) -> "Slice":
        """Cut out the part of the document between two positions as an open Slice."""
        if to is None:
            to = self.content.size
        if from_ == to:
            return Slice.empty
        rfrom, rto = self.resolve(from_), self.resolve(to)
        depth = 0 if include_parents else rfrom.shared_depth(to)
        start = rfrom.start(depth)
        node = rfrom.node(depth)
        content = node.content.cut(rfrom.pos - start, rto.pos - start)
        return Slice(content, rfrom.depth - depth, rto.depth - depth)

    def replace(self, from_: int, to: int, slice_: "Slice") -> "Node":
        """Replace [from_, to) with `slice_`. Raises ReplaceError if the result does not fit."""
        from retrace.model.replace import replace

        return replace(self.resolve(from_), self.resolve(to), slice_)

    def resolve(self, pos: int) -> ResolvedPos:
        return ResolvedPos.resolve(self, pos)

    def check(self):
        """Validate this subtree against the grammar. Raises SchemaError."""
        if not self.type.valid_content(self.content):
            raise SchemaError(f"Invalid content for node {self.type.name}: {self.content}")
        self.type.check_attrs(self.attrs)
        marks: Tuple[Mark, ...] = Mark.none
        for mark in self.marks:
            marks = mark.add_to_set(marks)
        if not Mark.same_set(marks, self.marks):
            names = [m.type.name for m in self.marks]
            raise SchemaError(f"Invalid collection of marks for node {self.type.name}: {names}")
        for child in self.content:
            child.check()

    # --- Serialisation ---

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.name}
        if self.attrs:
            data["attrs"] = dict(self.attrs)
        if self.content.size:
            data["content"] = self.content.to_json()
        if self.marks:
            data["marks"] = [mark.to_json() for mark in self.marks]
        return data

    def __repr__(self) -> str:
        name = self.type.name
        if self.content.size:
            name += f"({self.content.to_string_inner()})"
        return _wrap_marks(self.marks, name)


class TextNode(Node):
    __slots__ = ("text",)

    def __init__(self, node_type, attrs: Dict[str, Any], text: str, marks=Mark.none):
        super().__init__(node_type, attrs, None, marks)
        if not text:
            raise SchemaError("Empty text nodes are not allowed")
        self.text = text

    @property
    def node_size(self) -> int:
        return len(self.text)

    @property
    def text_content(self) -> str:
        return self.text

    def text_between(self, from_: int, to: int, block_separator: str = "", leaf_text: Optional[str] = None) -> str:
        return self.text[from_:to]

    def with_text(self, text: str) -> "TextNode":
        if text == self.text:
            return self
        return TextNode(self.type, self.attrs, text, self.marks)

    def mark(self, marks) -> "TextNode":
        marks = tuple(marks)
        if Mark.same_set(marks, self.marks):
            return self
        return TextNode(self.type, self.attrs, self.text, marks)

    def cut(self, from_: int = 0, to: Optional[int] = None) -> "TextNode":
        if to is None:
            to = len(self.text)
        if from_ == 0 and to == len(self.text):
            return self
        return self.with_text(self.text[from_:to])

    def to_json(self) -> Dict[str, Any]:
        data = super().to_json()
        data["text"] = self.text
        return data

    def __repr__(self) -> str:
        return _wrap_marks(self.marks, repr(self.text))


def _wrap_marks(marks, text: str) -> str:
    for mark in reversed(marks):
        text = f"{mark.type.name}({text})"
    return text


class Slice:
    """
    A piece of document cut out of a larger one. `open_start` and `open_end`
    count how many levels of nodes at either edge are cut open.
    """

    __slots__ = ("content", "open_start", "open_end")

    empty: "Slice"

    def __init__(self, content: Fragment, open_start: int, open_end: int):
        self.content = content
        self.open_start = open_start
        self.open_end = open_end

    @property
    def size(self) -> int:
        return self.content.size - self.open_start - self.open_end

    def insert_at(self, pos: int, fragment: Fragment) -> Optional["Slice"]:
        content = _insert_into(self.content, pos + self.open_start, fragment)
        if content is None:
            return None
        return Slice(content, self.open_start, self.open_end)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Slice):
            return NotImplemented
        return (
            self.content == other.content
            and self.open_start == other.open_start
            and self.open_end == other.open_end
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"{self.content}({self.open_start},{self.open_end})"

    def to_json(self) -> Optional[Dict[str, Any]]:
        if not self.content.size:
            return None
        data: Dict[str, Any] = {"content": self.content.to_json()}
        if self.open_start > 0:
            data["openStart"] = self.open_start
        if self.open_end > 0:
            data["openEnd"] = self.open_end
        return data

    @staticmethod
    def from_json(schema, data: Optional[Dict[str, Any]]) -> "Slice":
        if not data:
            return Slice.empty
        open_start = data.get("openStart", 0) or 0
        open_end = data.get("openEnd", 0) or 0
        if not isinstance(open_start, int) or not isinstance(open_end, int):
            raise SchemaError("Invalid input for Slice.from_json")
        content = Fragment.from_array([schema.node_from_json(child) for child in data.get("content") or []])
        return Slice(content, open_start, open_end)


Slice.empty = Slice(Fragment.empty, 0, 0)


def _insert_into(content: Fragment, dist: int, insert: Fragment) -> Optional[Fragment]:
    index, offset = content.find_index(dist)
    child = content.maybe_child(index)
    if offset == dist or child.is_text:
        return content.cut(0, dist).append(insert).append(content.cut(dist))
    inner = _insert_into(child.content, dist - offset - 1, insert)
    return inner and content.replace_child(index, child.copy(inner))
