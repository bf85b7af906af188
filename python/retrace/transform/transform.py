from typing import Any, Dict, List, Optional, Sequence

from retrace.errors import TransformError
from retrace.model.mark import Mark
from retrace.model.node import Fragment, Slice
from retrace.transform.steps import (
    AddMarkStep,
    RemoveMarkStep,
    ReplaceStep,
    SetNodeMarkupStep,
    Step,
    StepResult,
)


class Transform:
    """
    An ordered list of steps together with the documents they pass through.
    ``docs[i]`` is the document before ``steps[i]``; ``doc`` is the latest.
    """

    def __init__(self, doc):
        self.doc = doc
        self.steps: List[Step] = []
        self.docs: List = []

    @property
    def before(self):
        """The document this transform started from."""
        return self.docs[0] if self.docs else self.doc

    @property
    def doc_changed(self) -> bool:
        return bool(self.steps)

    def step(self, step: Step) -> "Transform":
        result = self.maybe_step(step)
        if result.failed:
            raise TransformError(result.failed)
        return self

    def maybe_step(self, step: Step) -> StepResult:
        result = step.apply(self.doc)
        if not result.failed:
            self.add_step(step, result.doc)
        return result

    def add_step(self, step: Step, doc):
        """Record a step whose result document has already been computed."""
        self.docs.append(self.doc)
        self.steps.append(step)
        self.doc = doc

    def to_json(self) -> List[Dict[str, Any]]:
        return [step.to_json() for step in self.steps]

    # --- Builders ---

    def replace(self, from_: int, to: Optional[int] = None, slice_: Slice = Slice.empty) -> "Transform":
        if to is None:
            to = from_
        if from_ == to and not slice_.size:
            return self
        return self.step(ReplaceStep(from_, to, slice_))

    def replace_with(self, from_: int, to: int, content) -> "Transform":
        return self.replace(from_, to, Slice(Fragment.from_(content), 0, 0))

    def delete(self, from_: int, to: int) -> "Transform":
        return self.replace(from_, to, Slice.empty)

    def insert(self, pos: int, content) -> "Transform":
        return self.replace_with(pos, pos, content)

    def add_mark(self, from_: int, to: int, mark: Mark) -> "Transform":
        if from_ < to:
            self.step(AddMarkStep(from_, to, mark))
        return self

    def remove_mark(self, from_: int, to: int, mark: Mark) -> "Transform":
        if from_ < to:
            self.step(RemoveMarkStep(from_, to, mark))
        return self

    def set_node_markup(
        self, pos: int, node_type=None, attrs: Optional[Dict[str, Any]] = None, marks=None
    ) -> "Transform":
        """
        Change the type, attributes and/or marks of the node at `pos`.
        `node_type` may be a NodeType, a type name or None to keep the current type.
        """
        type_name = getattr(node_type, "name", node_type)
        return self.step(SetNodeMarkupStep(pos, type_name, attrs, marks))

    def split(self, pos: int, depth: int = 1, types_after: Optional[Sequence[Any]] = None) -> "Transform":
        """
        Split the node at `pos` and `depth - 1` of its ancestors. `types_after`
        optionally gives, outermost first, objects with ``type`` and ``attrs``
        for the nodes created after the split.
        """
        rpos = self.doc.resolve(pos)
        before = Fragment.empty
        after = Fragment.empty
        d = rpos.depth
        i = depth - 1
        while d > rpos.depth - depth:
            before = Fragment.from_(rpos.node(d).copy(before))
            type_after = types_after[i] if types_after and i < len(types_after) else None
            if type_after is not None:
                after = Fragment.from_(type_after.type.create(type_after.attrs, after))
            else:
                after = Fragment.from_(rpos.node(d).copy(after))
            d -= 1
            i -= 1
        return self.step(ReplaceStep(pos, pos, Slice(before.append(after), depth, depth), True))

    def join(self, pos: int, depth: int = 1) -> "Transform":
        """Join the blocks around `pos` by deleting the boundary tokens between them."""
        return self.step(ReplaceStep(pos - depth, pos + depth, Slice.empty, True))
