"""
Reconstruction of a step sequence from two document snapshots.

The patch between the two documents' JSON is consumed op by op. Ops are
batched until the working JSON parses into a valid document again, and
each valid batch is turned into steps by one of three handlers: a node
markup rewrite, a character level text replace, or a generic replace of
the smallest differing region.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

import structlog

from retrace.errors import NoValidDiffError, NoValidOperationError
from retrace.models import RecreateOptions, SimplifyMode
from retrace.recreate.context import RecreateContext
from retrace.recreate.markup import rewrite_node_markup
from retrace.recreate.marks import reconcile_marks
from retrace.recreate.replace import resolve_generic_replace
from retrace.recreate.simplify import recognise_patterns, simplify_transform
from retrace.recreate.text import expand_text_replace
from retrace.transform import Transform
from retrace.utils.patch import PATCH_ERRORS, PatchOp, apply_op, path_parts, scratch_copy

logger = structlog.get_logger(__name__)


class BatchState(str, Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    INVALID = "INVALID"
    EXHAUSTED = "EXHAUSTED"


class PatchPlanner:
    """
    Drives the content phase: pops patch ops, grows batches until they yield
    a valid document and hands each batch to the matching handler.
    """

    def __init__(self, ctx: RecreateContext):
        self.ctx = ctx
        self.batches = 0

    def run(self):
        ctx = self.ctx
        batch: List[PatchOp] = []
        # JSON of a batch the generic replace found to be a no-op; the next op builds on it.
        carried: Optional[Dict[str, Any]] = None

        while ctx.ops:
            scratch = scratch_copy(carried if carried is not None else ctx.current_json)
            state = BatchState.PENDING
            candidate = None
            op = None

            while state is not BatchState.VALIDATED:
                if state is BatchState.INVALID and not ctx.ops:
                    state = BatchState.EXHAUSTED
                    break
                op = ctx.ops.popleft()
                batch.append(op)
                scratch, candidate = self._apply(scratch, op)
                state = BatchState.VALIDATED if candidate is not None else BatchState.INVALID

            if state is BatchState.EXHAUSTED:
                logger.error(f"No valid diff possible applying {op['path']}", batch_size=len(batch))
                raise NoValidDiffError(f"No valid diff possible applying {op['path']}")

            self.batches += 1
            if self._dispatch(batch, op, scratch, candidate):
                batch = []
                carried = None
            else:
                carried = scratch

    def _apply(self, scratch, op: PatchOp):
        try:
            scratch = apply_op(scratch, op)
        except PATCH_ERRORS as e:
            logger.debug(f"Patch op does not apply: {e}", path=op.get("path"))
            return scratch, None
        return scratch, self.ctx.parse(scratch)

    def _dispatch(self, batch: List[PatchOp], op: PatchOp, scratch, candidate) -> bool:
        """Run the handler for a validated batch. Returns False if the batch must keep growing."""
        if len(batch) == 1:
            parts = path_parts(op)
            if "marks" not in parts and ("attrs" in parts or "type" in parts):
                logger.debug("Batch handled as markup rewrite", path=op["path"])
                if rewrite_node_markup(self.ctx):
                    return True
            if op["op"] == "replace" and parts and parts[-1] == "text":
                logger.debug("Batch handled as text replace", path=op["path"])
                expand_text_replace(self.ctx, op, scratch)
                return True

        logger.debug("Batch handled as generic replace", batch_size=len(batch))
        return resolve_generic_replace(self.ctx, candidate, scratch)


def _coerce_options(options: Union[RecreateOptions, Dict[str, Any], None]) -> RecreateOptions:
    if options is None:
        return RecreateOptions()
    if isinstance(options, RecreateOptions):
        return options
    return RecreateOptions.model_validate(options)


def recreate_transform(from_doc, to_doc, options: Union[RecreateOptions, Dict[str, Any], None] = None) -> Transform:
    """
    Build a Transform whose steps turn `from_doc` into `to_doc`.

    Raises NoValidDiffError when the documents cannot be bridged through
    valid intermediate documents, and NoValidOperationError when a computed
    step does not apply.
    """
    options = _coerce_options(options)
    ctx = RecreateContext(from_doc, to_doc, options)

    planner = PatchPlanner(ctx)
    planner.run()
    content_steps = len(ctx.tr.steps)

    if options.separate_mark_phase:
        reconcile_marks(ctx)

    if ctx.tr.doc != ctx.to_doc:
        logger.error("Reconstructed document does not match the target")
        raise NoValidOperationError("Reconstructed document does not match the target")

    tr = ctx.tr
    if options.simplify is SimplifyMode.MERGE:
        tr = simplify_transform(tr)
    elif options.simplify is SimplifyMode.PATTERNS:
        tr = recognise_patterns(tr)

    logger.info(
        f"Recreated {len(tr.steps)} steps",
        batches=planner.batches,
        content_steps=content_steps,
        mark_steps=len(ctx.tr.steps) - content_steps,
        simplify=options.simplify.value,
        word_diffs=options.word_diffs,
    )
    return tr
