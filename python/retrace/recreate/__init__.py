from retrace.recreate.engine import BatchState, PatchPlanner, recreate_transform
from retrace.recreate.replace import get_replace_step
from retrace.recreate.simplify import recognise_patterns, simplify_transform

__all__ = [
    "BatchState",
    "PatchPlanner",
    "get_replace_step",
    "recognise_patterns",
    "recreate_transform",
    "simplify_transform",
]
