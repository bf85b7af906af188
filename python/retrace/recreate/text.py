from collections import deque

import structlog

from retrace.diff import DELETE, INSERT, diff_text
from retrace.model import Fragment, Slice
from retrace.transform import ReplaceStep
from retrace.utils.patch import apply_op, scratch_copy, value_at

logger = structlog.get_logger(__name__)


def _marker_doc(ctx, op, marker: str):
    marked_json = apply_op(scratch_copy(ctx.current_json), dict(op, value=marker))
    return ctx.schema.node_from_json(marked_json)


def _replace_text(ctx, from_: int, to: int, text: str, marks):
    if text:
        slice_ = Slice(Fragment.from_(ctx.schema.text(text, marks)), 0, 0)
    else:
        slice_ = Slice.empty
    ctx.apply_step(ReplaceStep(from_, to, slice_))


def expand_text_replace(ctx, op, scratch) -> int:
    """
    Turn a patch op replacing a whole text node's text into steps touching
    only the changed characters (or words). Returns the number of steps.
    """
    # 1. Anchor: two marker texts diverge exactly where the text node starts.
    marked_a = _marker_doc(ctx, op, "xx")
    marked_b = _marker_doc(ctx, op, "yy")
    offset = marked_a.content.find_diff_start(marked_b.content)

    # 2. Inserted text inherits the marks found at the text node.
    marks = marked_a.resolve(offset + 1).marks()

    # 3. Diff old and new text.
    old_text = value_at(ctx.current_json, op["path"])
    runs = deque(diff_text(old_text, op["value"], word_level=ctx.options.word_diffs))

    # 4. Walk the runs with a cursor in document positions.
    emitted = 0
    cursor = offset
    while runs:
        run = runs.popleft()
        if run.op == INSERT:
            if runs and runs[0].op == DELETE:
                removed = runs.popleft()
                _replace_text(ctx, cursor, cursor + len(removed.text), run.text, marks)
            else:
                _replace_text(ctx, cursor, cursor, run.text, marks)
            cursor += len(run.text)
            emitted += 1
        elif run.op == DELETE:
            if runs and runs[0].op == INSERT:
                inserted = runs.popleft()
                _replace_text(ctx, cursor, cursor + len(run.text), inserted.text, marks)
                cursor += len(inserted.text)
            else:
                _replace_text(ctx, cursor, cursor + len(run.text), "", marks)
            emitted += 1
        else:
            cursor += len(run.text)

    # 5. The working document now carries the new text.
    ctx.current_json = scratch
    logger.debug(f"Text replace expanded into {emitted} steps", path=op["path"], anchor=offset)
    return emitted
