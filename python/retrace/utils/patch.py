"""
Helpers around jsonpatch for diffing node JSON.

Patch ops are plain RFC 6902 dicts (``{"op": ..., "path": ..., "value": ...}``).
They are applied one at a time, in place, to scratch copies owned by the caller.
"""

from copy import deepcopy
from typing import Any, Dict, List

import jsonpatch
import jsonpointer

PatchOp = Dict[str, Any]

# Raised by jsonpatch when an op does not fit the document it is applied to.
PATCH_ERRORS = (jsonpatch.JsonPatchException, jsonpointer.JsonPointerException)


class OrderedDiffBuilder(jsonpatch.DiffBuilder):
    """
    DiffBuilder that visits object keys in document order. The stock builder
    walks key sets, whose order changes with the interpreter's hash seed, so
    the same two documents could produce differently ordered patches.
    Hooks into jsonpatch 1.33 internals (string paths), hence the pinned release.
    """

    def _compare_dicts(self, path, src, dst):
        for key in src:
            if key not in dst:
                self._item_removed(path, str(key), src[key])

        for key in dst:
            if key not in src:
                self._item_added(path, str(key), dst[key])

        for key in src:
            if key in dst:
                self._compare_values(path, key, src[key], dst[key])


def create_patch(source: Any, target: Any) -> List[PatchOp]:
    """Ordered patch ops turning `source` into `target`."""
    builder = OrderedDiffBuilder(source, target, jsonpatch.JsonPatch.json_dumper)
    builder._compare_values("", None, source, target)
    return list(builder.execute())


def apply_op(document: Any, op: PatchOp) -> Any:
    """
    Apply a single op to `document` in place and return the result (which is a
    new object only when the op replaces the root).
    """
    return jsonpatch.apply_patch(document, [op], in_place=True)


def path_parts(op: PatchOp) -> List[str]:
    return list(jsonpointer.JsonPointer(op["path"]).parts)


def value_at(document: Any, path: str) -> Any:
    return jsonpointer.resolve_pointer(document, path)


def scratch_copy(document: Any) -> Any:
    return deepcopy(document)
