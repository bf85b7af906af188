from typing import Optional

import structlog

from retrace.transform import ReplaceStep

logger = structlog.get_logger(__name__)


def get_replace_step(from_doc, to_doc) -> Optional[ReplaceStep]:
    """
    The single ReplaceStep covering the difference between two documents, or
    None if they are equal. When the shared prefix and suffix overlap (e.g. a
    repeated character was inserted), the region is anchored at the earliest
    start and moved to whichever side keeps it shallower.
    """
    start = to_doc.content.find_diff_start(from_doc.content)
    if start is None:
        return None
    end = to_doc.content.find_diff_end(from_doc.content)
    end_a, end_b = end["a"], end["b"]

    overlap = start - min(end_a, end_b)
    if overlap > 0:
        if from_doc.resolve(start - overlap).depth < to_doc.resolve(end_a + overlap).depth:
            start -= overlap
        else:
            end_a += overlap
            end_b += overlap

    return ReplaceStep(start, end_b, to_doc.slice(start, end_a))


def resolve_generic_replace(ctx, candidate_doc, candidate_json) -> bool:
    """
    Move the working document to `candidate_doc` with one ReplaceStep.
    Returns False when the candidate equals the working document.
    """
    step = get_replace_step(ctx.current_doc(), candidate_doc)
    if step is None:
        logger.debug("Generic replace not applicable: candidate equals the working document")
        return False
    ctx.apply_step(step)
    ctx.current_json = candidate_json
    return True
