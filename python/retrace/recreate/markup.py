import structlog

from retrace.model import Mark
from retrace.transform import SetNodeMarkupStep

logger = structlog.get_logger(__name__)


def rewrite_node_markup(ctx) -> bool:
    """
    Emit one SetNodeMarkupStep for the first node whose type, attrs or marks
    differ from the target, then rebuild the pending patch from the new
    working document.

    Returns False when no in-place rewrite fits: the documents already match,
    the first difference is inside text or node content, or the target type
    cannot hold the node's current children. The caller then falls back to a
    generic replace.
    """
    current_doc = ctx.current_doc()
    target_doc = ctx.final_doc()

    start = target_doc.content.find_diff_start(current_doc.content)
    if start is None:
        logger.debug("Markup rewrite found no differing node")
        return False

    from_node = current_doc.node_at(start)
    to_node = target_doc.node_at(start)
    if from_node is None or to_node is None or from_node.is_text or to_node.is_text:
        logger.debug(f"Markup rewrite not applicable: no node to rewrite at {start}")
        return False
    if from_node.same_markup(to_node):
        logger.debug(f"Markup rewrite not applicable: node at {start} differs only in content")
        return False
    if not to_node.type.valid_content(from_node.content):
        logger.debug(
            f"Markup rewrite not applicable: {to_node.type.name} cannot hold this content",
            pos=start,
            node_type=from_node.type.name,
        )
        return False

    type_name = None if from_node.type is to_node.type else to_node.type.name
    marks = None if Mark.same_set(from_node.marks, to_node.marks) else to_node.marks

    ctx.apply_step(SetNodeMarkupStep(start, type_name, dict(to_node.attrs), marks))

    # One markup change can settle or shift several pending ops, so diff again.
    ctx.current_json = ctx.snapshot_json(ctx.tr.doc)
    ctx.refresh_ops()
    return True
