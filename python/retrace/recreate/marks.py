import structlog

from retrace.model import Fragment, Mark
from retrace.transform import AddMarkStep, RemoveMarkStep

logger = structlog.get_logger(__name__)


def remove_marks(node):
    """Copy of `node` with the marks of every inline descendant removed."""
    if not node.content.size:
        return node
    children = []
    for child in node.content:
        if child.is_inline:
            child = child.mark(Mark.none)
        if child.content.size:
            child = remove_marks(child)
        children.append(child)
    return node.copy(Fragment.from_array(children))


def reconcile_marks(ctx) -> int:
    """
    Bring the marks of the working document in line with the target once
    their content agrees. For each overlap between a target inline node and a
    working inline node, marks only the working side has are removed, then
    marks only the target has are added. Returns the number of steps emitted.
    """
    emitted = 0

    def visit_target(t_node, t_pos, parent, index):
        nonlocal emitted
        if not t_node.is_inline:
            return True
        t_end = t_pos + t_node.node_size

        overlaps = []

        def collect(f_node, f_pos, parent, index):
            if not f_node.is_inline:
                return True
            overlaps.append((f_node, f_pos))
            return False

        ctx.tr.doc.nodes_between(t_pos, t_end, collect)

        for f_node, f_pos in overlaps:
            from_ = max(t_pos, f_pos)
            to = min(t_end, f_pos + f_node.node_size)
            for mark in f_node.marks:
                if not mark.is_in_set(t_node.marks):
                    ctx.apply_step(RemoveMarkStep(from_, to, mark))
                    emitted += 1
            for mark in t_node.marks:
                if not mark.is_in_set(f_node.marks):
                    ctx.apply_step(AddMarkStep(from_, to, mark))
                    emitted += 1
        return False

    ctx.to_doc.descendants(visit_target)
    logger.debug(f"Mark phase emitted {emitted} steps")
    return emitted
