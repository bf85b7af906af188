"""
The replace algorithm: splice an open Slice between two resolved positions,
closing and joining nodes at the seams, and reject results the grammar does
not accept.
"""

from typing import List, Optional

from retrace.errors import ReplaceError
from retrace.model.node import Fragment
from retrace.model.resolvedpos import ResolvedPos


def replace(rfrom: ResolvedPos, rto: ResolvedPos, slice_):
    if slice_.open_start > rfrom.depth:
        raise ReplaceError("Inserted content deeper than insertion position")
    if rfrom.depth - slice_.open_start != rto.depth - slice_.open_end:
        raise ReplaceError("Inconsistent open depths")
    return _replace_outer(rfrom, rto, slice_, 0)


def _replace_outer(rfrom: ResolvedPos, rto: ResolvedPos, slice_, depth: int):
    index = rfrom.index(depth)
    node = rfrom.node(depth)
    if index == rto.index(depth) and depth < rfrom.depth - slice_.open_start:
        inner = _replace_outer(rfrom, rto, slice_, depth + 1)
        return node.copy(node.content.replace_child(index, inner))
    if not slice_.content.size:
        return _close(node, _replace_two_way(rfrom, rto, depth))
    if not slice_.open_start and not slice_.open_end and rfrom.depth == depth and rto.depth == depth:
        parent = rfrom.parent
        content = parent.content
        return _close(
            parent,
            content.cut(0, rfrom.parent_offset).append(slice_.content).append(content.cut(rto.parent_offset)),
        )
    start, end = _prepare_slice_for_replace(slice_, rfrom)
    return _close(node, _replace_three_way(rfrom, start, end, rto, depth))


def _check_join(main, sub):
    if not sub.type.compatible_content(main.type):
        raise ReplaceError(f"Cannot join {sub.type.name} onto {main.type.name}")


def _joinable(before: ResolvedPos, after: ResolvedPos, depth: int):
    node = before.node(depth)
    _check_join(node, after.node(depth))
    return node


def _add_node(child, target: List):
    if target and child.is_text and child.same_markup(target[-1]):
        target[-1] = child.with_text(target[-1].text + child.text)
    else:
        target.append(child)


def _add_range(start: Optional[ResolvedPos], end: Optional[ResolvedPos], depth: int, target: List):
    node = (end or start).node(depth)
    start_index = 0
    end_index = end.index(depth) if end else node.child_count
    if start:
        start_index = start.index(depth)
        if start.depth > depth:
            start_index += 1
        elif start.text_offset:
            _add_node(start.node_after, target)
            start_index += 1
    for i in range(start_index, end_index):
        _add_node(node.child(i), target)
    if end and end.depth == depth and end.text_offset:
        _add_node(end.node_before, target)


def _close(node, content: Fragment):
    node.type.check_content(content)
    return node.copy(content)


def _replace_three_way(rfrom, start, end, rto, depth: int) -> Fragment:
    open_start = _joinable(rfrom, start, depth + 1) if rfrom.depth > depth else None
    open_end = _joinable(end, rto, depth + 1) if rto.depth > depth else None

    content: List = []
    _add_range(None, rfrom, depth, content)
    if open_start is not None and open_end is not None and start.index(depth) == end.index(depth):
        _check_join(open_start, open_end)
        _add_node(_close(open_start, _replace_three_way(rfrom, start, end, rto, depth + 1)), content)
    else:
        if open_start is not None:
            _add_node(_close(open_start, _replace_two_way(rfrom, start, depth + 1)), content)
        _add_range(start, end, depth, content)
        if open_end is not None:
            _add_node(_close(open_end, _replace_two_way(end, rto, depth + 1)), content)
    _add_range(rto, None, depth, content)
    return Fragment(content)


def _replace_two_way(rfrom, rto, depth: int) -> Fragment:
    content: List = []
    _add_range(None, rfrom, depth, content)
    if rfrom.depth > depth:
        node_type = _joinable(rfrom, rto, depth + 1)
        _add_node(_close(node_type, _replace_two_way(rfrom, rto, depth + 1)), content)
    _add_range(rto, None, depth, content)
    return Fragment(content)


def _prepare_slice_for_replace(slice_, along: ResolvedPos):
    extra = along.depth - slice_.open_start
    parent = along.node(extra)
    node = parent.copy(slice_.content)
    for i in range(extra - 1, -1, -1):
        node = along.node(i).copy(Fragment.from_(node))
    return (
        ResolvedPos.resolve(node, slice_.open_start + extra),
        ResolvedPos.resolve(node, node.content.size - slice_.open_end - extra),
    )
