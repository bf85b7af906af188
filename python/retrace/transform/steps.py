"""
Atomic edit operations. Every step applies to a document and produces a new
one, or fails with a message; no step ever mutates the document it is given.

The set of step kinds is closed: Step.from_json dispatches on ``stepType``
through the registry that subclasses join when they are defined.
"""

from typing import Any, Dict, Optional, Tuple, Type

from retrace.errors import PositionError, ReplaceError, SchemaError
from retrace.model.mark import Mark
from retrace.model.node import Fragment, Slice


class StepResult:
    """Outcome of applying a step: either `doc` is set, or `failed` holds the reason."""

    __slots__ = ("doc", "failed")

    def __init__(self, doc, failed: Optional[str]):
        self.doc = doc
        self.failed = failed

    @classmethod
    def ok(cls, doc) -> "StepResult":
        return cls(doc, None)

    @classmethod
    def fail(cls, message: str) -> "StepResult":
        return cls(None, message)

    @classmethod
    def from_replace(cls, doc, from_: int, to: int, slice_: Slice) -> "StepResult":
        try:
            return cls.ok(doc.replace(from_, to, slice_))
        except (ReplaceError, PositionError) as e:
            return cls.fail(str(e))


_STEP_TYPES: Dict[str, Type["Step"]] = {}


class Step:
    json_id: str = ""

    def __init_subclass__(cls, json_id: str = "", **kwargs):
        super().__init_subclass__(**kwargs)
        if json_id:
            if json_id in _STEP_TYPES:
                raise ValueError(f"Duplicate use of step JSON ID {json_id}")
            cls.json_id = json_id
            _STEP_TYPES[json_id] = cls

    def apply(self, doc) -> StepResult:
        raise NotImplementedError

    def merge(self, other: "Step") -> Optional["Step"]:
        """Combine with a step applied directly after this one, or return None."""
        return None

    def to_json(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def _from_json(cls, schema, data: Dict[str, Any]) -> "Step":
        raise NotImplementedError

    @staticmethod
    def from_json(schema, data: Any) -> "Step":
        if not isinstance(data, dict) or not data.get("stepType"):
            raise SchemaError("Invalid input for Step.from_json")
        step_type = _STEP_TYPES.get(data["stepType"])
        if step_type is None:
            raise SchemaError(f"No step type {data['stepType']} defined")
        return step_type._from_json(schema, data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Step):
            return NotImplemented
        return type(self) is type(other) and self.to_json() == other.to_json()

    __hash__ = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_json()})"


def _require_ints(data: Dict[str, Any], *keys: str, owner: str):
    for key in keys:
        value = data.get(key)
        if not isinstance(value, int) or isinstance(value, bool):
            raise SchemaError(f"Invalid input for {owner}.from_json")


def _content_between(doc, from_: int, to: int) -> bool:
    """Whether [from_, to) covers anything besides node boundaries."""
    rfrom = doc.resolve(from_)
    dist = to - from_
    depth = rfrom.depth
    while dist > 0 and depth > 0 and rfrom.index_after(depth) == rfrom.node(depth).child_count:
        depth -= 1
        dist -= 1
    if dist > 0:
        next_node = rfrom.node(depth).maybe_child(rfrom.index_after(depth))
        while dist > 0:
            if next_node is None or next_node.is_leaf:
                return True
            next_node = next_node.first_child
            dist -= 1
    return False


class ReplaceStep(Step, json_id="replace"):
    """
    Replace [from_, to) with a slice. A `structure` step refuses to apply when
    the range contains content, so it can only move node boundaries.
    """

    def __init__(self, from_: int, to: int, slice_: Slice, structure: bool = False):
        self.from_ = from_
        self.to = to
        self.slice = slice_
        self.structure = structure

    def apply(self, doc) -> StepResult:
        try:
            if self.structure and _content_between(doc, self.from_, self.to):
                return StepResult.fail("Structure replace would overwrite content")
        except PositionError as e:
            return StepResult.fail(str(e))
        return StepResult.from_replace(doc, self.from_, self.to, self.slice)

    def merge(self, other: Step) -> Optional[Step]:
        if not isinstance(other, ReplaceStep) or other.structure or self.structure:
            return None
        if self.from_ + self.slice.size == other.from_ and not self.slice.open_end and not other.slice.open_start:
            if self.slice.size + other.slice.size == 0:
                slice_ = Slice.empty
            else:
                slice_ = Slice(
                    self.slice.content.append(other.slice.content), self.slice.open_start, other.slice.open_end
                )
            return ReplaceStep(self.from_, self.to + (other.to - other.from_), slice_, self.structure)
        if other.to == self.from_ and not self.slice.open_start and not other.slice.open_end:
            if self.slice.size + other.slice.size == 0:
                slice_ = Slice.empty
            else:
                slice_ = Slice(
                    other.slice.content.append(self.slice.content), other.slice.open_start, self.slice.open_end
                )
            return ReplaceStep(other.from_, self.to, slice_, self.structure)
        return None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"stepType": "replace", "from": self.from_, "to": self.to}
        if self.slice.size:
            data["slice"] = self.slice.to_json()
        if self.structure:
            data["structure"] = True
        return data

    @classmethod
    def _from_json(cls, schema, data):
        _require_ints(data, "from", "to", owner="ReplaceStep")
        return cls(data["from"], data["to"], Slice.from_json(schema, data.get("slice")), bool(data.get("structure")))


class ReplaceAroundStep(Step, json_id="replaceAround"):
    """
    Replace [from_, to) with a slice while keeping the content of
    [gap_from, gap_to), which is inserted into the slice at offset `insert`.
    Used to wrap, unwrap and re-parent content without copying it.
    """

    def __init__(
        self,
        from_: int,
        to: int,
        gap_from: int,
        gap_to: int,
        slice_: Slice,
        insert: int,
        structure: bool = False,
    ):
        self.from_ = from_
        self.to = to
        self.gap_from = gap_from
        self.gap_to = gap_to
        self.slice = slice_
        self.insert = insert
        self.structure = structure

    def apply(self, doc) -> StepResult:
        try:
            if self.structure and (
                _content_between(doc, self.from_, self.gap_from) or _content_between(doc, self.gap_to, self.to)
            ):
                return StepResult.fail("Structure gap-replace would overwrite content")
            gap = doc.slice(self.gap_from, self.gap_to)
            if gap.open_start or gap.open_end:
                return StepResult.fail("Gap is not a flat range")
            inserted = self.slice.insert_at(self.insert, gap.content)
        except PositionError as e:
            return StepResult.fail(str(e))
        if inserted is None:
            return StepResult.fail("Content does not fit in gap")
        return StepResult.from_replace(doc, self.from_, self.to, inserted)

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "stepType": "replaceAround",
            "from": self.from_,
            "to": self.to,
            "gapFrom": self.gap_from,
            "gapTo": self.gap_to,
            "insert": self.insert,
        }
        if self.slice.size:
            data["slice"] = self.slice.to_json()
        if self.structure:
            data["structure"] = True
        return data

    @classmethod
    def _from_json(cls, schema, data):
        _require_ints(data, "from", "to", "gapFrom", "gapTo", "insert", owner="ReplaceAroundStep")
        return cls(
            data["from"],
            data["to"],
            data["gapFrom"],
            data["gapTo"],
            Slice.from_json(schema, data.get("slice")),
            data["insert"],
            bool(data.get("structure")),
        )


class SetNodeMarkupStep(Step, json_id="setNodeMarkup"):
    """
    Give the node at `pos` a new type (None keeps the current one), attrs and
    marks (None keeps the current ones) while keeping its children.
    """

    def __init__(
        self,
        pos: int,
        type_name: Optional[str],
        attrs: Optional[Dict[str, Any]],
        marks: Optional[Tuple[Mark, ...]] = None,
    ):
        self.pos = pos
        self.type_name = type_name
        self.attrs = attrs
        self.marks = tuple(marks) if marks is not None else None

    def apply(self, doc) -> StepResult:
        try:
            node = doc.node_at(self.pos)
        except PositionError as e:
            return StepResult.fail(str(e))
        if node is None:
            return StepResult.fail(f"No node at position {self.pos}")
        if node.is_text:
            return StepResult.fail("Cannot set markup on a text node")

        schema = doc.type.schema
        if self.type_name is None:
            node_type = node.type
        elif self.type_name in schema.nodes:
            node_type = schema.nodes[self.type_name]
        else:
            return StepResult.fail(f"Unknown node type: {self.type_name}")

        try:
            new_node = node_type.create_checked(
                self.attrs, node.content, self.marks if self.marks is not None else node.marks
            )
        except SchemaError as e:
            return StepResult.fail(str(e))
        return StepResult.from_replace(
            doc, self.pos, self.pos + node.node_size, Slice(Fragment.from_(new_node), 0, 0)
        )

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"stepType": "setNodeMarkup", "pos": self.pos}
        if self.type_name is not None:
            data["type"] = self.type_name
        if self.attrs is not None:
            data["attrs"] = dict(self.attrs)
        if self.marks is not None:
            data["marks"] = [mark.to_json() for mark in self.marks]
        return data

    @classmethod
    def _from_json(cls, schema, data):
        _require_ints(data, "pos", owner="SetNodeMarkupStep")
        marks = None
        if data.get("marks") is not None:
            marks = Mark.set_from([schema.mark_from_json(m) for m in data["marks"]])
        return cls(data["pos"], data.get("type"), data.get("attrs"), marks)


def _map_inline(fragment: Fragment, f, parent) -> Fragment:
    """Rebuild a fragment, passing every inline node through `f(node, parent)`."""
    mapped = []
    for child in fragment:
        if child.content.size:
            child = child.copy(_map_inline(child.content, f, child))
        if child.is_inline:
            child = f(child, parent)
        mapped.append(child)
    return Fragment.from_array(mapped)


class AddMarkStep(Step, json_id="addMark"):
    def __init__(self, from_: int, to: int, mark: Mark):
        self.from_ = from_
        self.to = to
        self.mark = mark

    def apply(self, doc) -> StepResult:
        try:
            old_slice = doc.slice(self.from_, self.to)
            rfrom = doc.resolve(self.from_)
        except PositionError as e:
            return StepResult.fail(str(e))
        parent = rfrom.node(rfrom.shared_depth(self.to))

        def add(node, parent_node):
            if not node.is_atom or not parent_node.type.allows_mark_type(self.mark.type):
                return node
            return node.mark(self.mark.add_to_set(node.marks))

        slice_ = Slice(_map_inline(old_slice.content, add, parent), old_slice.open_start, old_slice.open_end)
        return StepResult.from_replace(doc, self.from_, self.to, slice_)

    def merge(self, other: Step) -> Optional[Step]:
        if (
            isinstance(other, AddMarkStep)
            and other.mark == self.mark
            and self.from_ <= other.to
            and self.to >= other.from_
        ):
            return AddMarkStep(min(self.from_, other.from_), max(self.to, other.to), self.mark)
        return None

    def to_json(self) -> Dict[str, Any]:
        return {"stepType": "addMark", "mark": self.mark.to_json(), "from": self.from_, "to": self.to}

    @classmethod
    def _from_json(cls, schema, data):
        _require_ints(data, "from", "to", owner="AddMarkStep")
        return cls(data["from"], data["to"], schema.mark_from_json(data.get("mark")))


class RemoveMarkStep(Step, json_id="removeMark"):
    def __init__(self, from_: int, to: int, mark: Mark):
        self.from_ = from_
        self.to = to
        self.mark = mark

    def apply(self, doc) -> StepResult:
        try:
            old_slice = doc.slice(self.from_, self.to)
        except PositionError as e:
            return StepResult.fail(str(e))

        def remove(node, parent_node):
            return node.mark(self.mark.remove_from_set(node.marks))

        content = _map_inline(old_slice.content, remove, doc)
        slice_ = Slice(content, old_slice.open_start, old_slice.open_end)
        return StepResult.from_replace(doc, self.from_, self.to, slice_)

    def merge(self, other: Step) -> Optional[Step]:
        if (
            isinstance(other, RemoveMarkStep)
            and other.mark == self.mark
            and self.from_ <= other.to
            and self.to >= other.from_
        ):
            return RemoveMarkStep(min(self.from_, other.from_), max(self.to, other.to), self.mark)
        return None

    def to_json(self) -> Dict[str, Any]:
        return {"stepType": "removeMark", "mark": self.mark.to_json(), "from": self.from_, "to": self.to}

    @classmethod
    def _from_json(cls, schema, data):
        _require_ints(data, "from", "to", owner="RemoveMarkStep")
        return cls(data["from"], data["to"], schema.mark_from_json(data.get("mark")))
