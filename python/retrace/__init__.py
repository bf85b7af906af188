from importlib.metadata import PackageNotFoundError, version

from retrace.errors import NoValidDiffError, NoValidOperationError, RecreateError, RetraceError
from retrace.model import Fragment, Mark, Node, Schema, Slice
from retrace.models import RecreateOptions, SimplifyMode
from retrace.recreate import get_replace_step, recognise_patterns, recreate_transform, simplify_transform
from retrace.transform import Step, Transform

try:
    __version__ = version("retrace")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "Fragment",
    "Mark",
    "Node",
    "NoValidDiffError",
    "NoValidOperationError",
    "RecreateError",
    "RecreateOptions",
    "RetraceError",
    "Schema",
    "SimplifyMode",
    "Slice",
    "Step",
    "Transform",
    "get_replace_step",
    "recognise_patterns",
    "recreate_transform",
    "simplify_transform",
    "__version__",
]
