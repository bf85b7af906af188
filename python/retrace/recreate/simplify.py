"""
Post-passes over a finished Transform.

`simplify_transform` merges adjacent compatible steps. `recognise_patterns`
instead rebuilds join, sink and split operations that reconstruction tends to
produce as an insertion plus a deletion. Both verify their output by
replaying it and fall back to the original transform when the replay does
not reach the same document.
"""

from collections import deque
from typing import List, Optional

import structlog

from retrace.errors import SchemaError, TransformError
from retrace.model import Fragment, Slice
from retrace.recreate.replace import get_replace_step
from retrace.transform import ReplaceAroundStep, ReplaceStep, Step, Transform

logger = structlog.get_logger(__name__)

_KEEP = object()


def _doc_before(tr: Transform, index: int):
    """The document `tr` held before its step at `index` (its final doc past the end)."""
    return tr.docs[index] if index < len(tr.docs) else tr.doc


# --- Pass 1: merging ---


def _merge_pair(doc, step: Step, next_step: Step):
    """
    Merge two consecutive steps applied to `doc`. Returns the merged step,
    None if the pair cancels out, or _KEEP when they should stay separate.
    """
    if isinstance(step, ReplaceStep) and isinstance(next_step, ReplaceStep):
        first = step.apply(doc)
        if first.failed:
            logger.debug(f"Merge skipped, first step failed: {first.failed}")
            return _KEEP
        second = next_step.apply(first.doc)
        if second.failed:
            logger.debug(f"Merge skipped, second step failed: {second.failed}")
            return _KEEP
        merged = get_replace_step(doc, second.doc)
        if merged is None:
            return None
    else:
        merged = step.merge(next_step)

    result = merged.apply(doc)
    if result.failed:
        logger.debug(f"Merge skipped, merged step failed: {result.failed}")
        return _KEEP
    return merged


def simplify_transform(tr: Transform) -> Transform:
    """Merge adjacent compatible steps. Returns `tr` itself if there is nothing to gain."""
    if not tr.steps:
        return tr

    new_tr = Transform(tr.before)
    pending = deque(tr.steps)

    try:
        while pending:
            step: Optional[Step] = pending.popleft()
            while step is not None and pending and step.merge(pending[0]) is not None:
                merged = _merge_pair(new_tr.doc, step, pending[0])
                if merged is _KEEP:
                    break
                pending.popleft()
                step = merged
            if step is not None:
                new_tr.step(step)
    except TransformError as e:
        logger.warning(f"Step merging failed, keeping unmerged steps: {e}")
        return tr

    if new_tr.doc != tr.doc:
        logger.warning("Merged steps do not reproduce the final document, keeping unmerged steps")
        return tr

    logger.debug(f"Merged {len(tr.steps)} steps into {len(new_tr.steps)}")
    return new_tr


# --- Pass 2: pattern recognition ---


def _outcome(pattern: str, index: int, outcome: str, reason: str = ""):
    logger.debug(
        f"Pattern {pattern} {outcome} at step {index}", pattern=pattern, index=index, outcome=outcome, reason=reason
    )


def _try_candidate(new_tr: Transform, candidate: Step, expected, pattern: str, index: int) -> bool:
    """Apply `candidate` if it reproduces `expected`; log the outcome either way."""
    result = candidate.apply(new_tr.doc)
    if result.failed:
        _outcome(pattern, index, "rejected", result.failed)
        return False
    if result.doc.content.find_diff_start(expected.content) is not None:
        _outcome(pattern, index, "rejected", "result differs from the original steps")
        return False
    new_tr.add_step(candidate, result.doc)
    _outcome(pattern, index, "applied")
    return True


def _is_insert_then_delete(tr: Transform, index: int) -> bool:
    step = tr.steps[index]
    next_step = tr.steps[index + 1] if index + 1 < len(tr.steps) else None
    return step.from_ == step.to and isinstance(next_step, ReplaceStep) and next_step.slice.size == 0


def _try_join(new_tr: Transform, tr: Transform, index: int) -> int:
    if not _is_insert_then_delete(tr, index):
        _outcome("join", index, "inapplicable")
        return 0
    step = tr.steps[index]
    candidate = ReplaceStep(step.from_, step.from_ + 2, Slice.empty, True)
    return 2 if _try_candidate(new_tr, candidate, _doc_before(tr, index + 2), "join", index) else 0


def _try_sink(new_tr: Transform, tr: Transform, index: int) -> int:
    if not _is_insert_then_delete(tr, index):
        _outcome("sink", index, "inapplicable")
        return 0
    step = tr.steps[index]
    outer = step.slice.content.first_child
    inner = outer.first_child if outer is not None else None
    if inner is None:
        _outcome("sink", index, "inapplicable", "inserted content is not a two-level wrapper")
        return 0
    try:
        wrapper = inner.type.create(None, Fragment.from_(outer.type.create(None)))
    except SchemaError as e:
        _outcome("sink", index, "inapplicable", str(e))
        return 0

    # The inserted wrapper is consumed by the deletion; wrap what followed it instead.
    end = step.from_ + step.slice.size - 1
    candidate = ReplaceAroundStep(step.from_, end, step.from_ + 1, end, Slice(Fragment.from_(wrapper), 1, 0), 1, True)
    return 2 if _try_candidate(new_tr, candidate, _doc_before(tr, index + 2), "sink", index) else 0


def _try_split(new_tr: Transform, tr: Transform, index: int) -> int:
    step = tr.steps[index]

    # Consecutive removals, then the insertion that should follow them.
    removed_text = ""
    removals = 0
    candidate_step = step
    while isinstance(candidate_step, ReplaceStep) and candidate_step.slice.size == 0:
        removed_text += tr.docs[index + removals].text_between(candidate_step.from_, candidate_step.to)
        removals += 1
        position = index + removals
        candidate_step = tr.steps[position] if position < len(tr.steps) else None

    insertion = candidate_step
    if not (isinstance(insertion, ReplaceStep) and removals > 0 and insertion.from_ == insertion.to):
        _outcome("split", index, "inapplicable")
        return 0

    after_insert = _doc_before(tr, index + removals + 1)
    inserted_text = after_insert.text_between(insertion.from_, insertion.from_ + insertion.slice.size)
    if inserted_text != removed_text:
        _outcome("split", index, "inapplicable", "inserted text differs from removed text")
        return 0

    types: List = []
    node = insertion.slice.content.first_child
    while node is not None and not node.is_text:
        types.append(node)
        node = node.first_child

    rpos = new_tr.doc.resolve(step.from_)
    if not types or len(types) > rpos.depth:
        _outcome("split", index, "inapplicable", "no wrapper to split")
        return 0
    for d, expected in enumerate(types):
        if rpos.node(rpos.depth - (len(types) - d) + 1).type is not expected.type:
            _outcome("split", index, "inapplicable", "wrapper types do not match the ancestors")
            return 0

    trial = Transform(new_tr.doc)
    try:
        trial.split(step.from_, len(types), types)
    except (TransformError, SchemaError) as e:
        _outcome("split", index, "rejected", str(e))
        return 0
    if not _try_candidate(new_tr, trial.steps[0], after_insert, "split", index):
        return 0
    return removals + 1


def recognise_patterns(tr: Transform) -> Transform:
    """
    Replace insert+delete step sequences with the single join, sink or split
    step that produces the same document. Returns `tr` itself if replaying
    the result fails.
    """
    if not tr.steps:
        return tr

    new_tr = Transform(tr.before)
    index = 0
    while index < len(tr.steps):
        step = tr.steps[index]
        if isinstance(step, ReplaceStep):
            consumed = _try_join(new_tr, tr, index) or _try_sink(new_tr, tr, index) or _try_split(new_tr, tr, index)
            if consumed:
                index += consumed
                continue

        result = new_tr.maybe_step(step)
        if result.failed:
            logger.warning(f"Replaying step {index} failed during pattern recognition: {result.failed}")
            return tr
        index += 1

    if new_tr.doc != tr.doc:
        logger.warning("Recognised patterns do not reproduce the final document, keeping original steps")
        return tr

    logger.debug(f"Pattern recognition turned {len(tr.steps)} steps into {len(new_tr.steps)}")
    return new_tr
