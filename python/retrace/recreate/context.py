from collections import deque
from typing import Any, Deque, Dict, Optional

import structlog

from retrace.errors import NoValidDiffError, NoValidOperationError, SchemaError
from retrace.models import RecreateOptions
from retrace.recreate.marks import remove_marks
from retrace.transform import Step, Transform
from retrace.utils.patch import PatchOp, create_patch

logger = structlog.get_logger(__name__)


class RecreateContext:
    """
    Private working state of one reconstruction call: the transform being
    built, the JSON of the working document, the target JSON and the pending
    patch ops between them.
    """

    def __init__(self, from_doc, to_doc, options: RecreateOptions):
        self.schema = from_doc.type.schema
        self.options = options
        self.from_doc = from_doc
        self.to_doc = self._adopt(to_doc)
        self.tr = Transform(from_doc)

        self.current_json: Dict[str, Any] = self.snapshot_json(from_doc)
        self.final_json: Dict[str, Any] = self.snapshot_json(self.to_doc)
        self.ops: Deque[PatchOp] = deque(create_patch(self.current_json, self.final_json))

    def _adopt(self, doc):
        """Re-read a document built against another Schema instance into ours."""
        if doc.type.schema is self.schema:
            return doc
        try:
            return self.schema.node_from_json(doc.to_json())
        except SchemaError as e:
            logger.error(f"Target document does not fit the source schema: {e}")
            raise NoValidDiffError(f"Target document does not fit the source schema: {e}") from e

    def snapshot_json(self, doc) -> Dict[str, Any]:
        """JSON of `doc` as the content diff sees it (mark-free in the separate mark phase)."""
        if self.options.separate_mark_phase:
            doc = remove_marks(doc)
        return doc.to_json()

    def refresh_ops(self):
        self.ops = deque(create_patch(self.current_json, self.final_json))

    def parse(self, data: Any) -> Optional[Any]:
        """
        Parse and validate node JSON. Returns None when the grammar rejects it,
        so callers can treat invalid intermediate documents as a state.
        """
        try:
            doc = self.schema.node_from_json(data)
            doc.check()
        except SchemaError as e:
            logger.debug(f"Candidate document rejected: {e}")
            return None
        return doc

    def current_doc(self):
        return self.schema.node_from_json(self.current_json)

    def final_doc(self):
        return self.schema.node_from_json(self.final_json)

    def apply_step(self, step: Step):
        result = self.tr.maybe_step(step)
        if result.failed:
            logger.error(f"Computed step could not be applied: {result.failed}", step=step.to_json())
            raise NoValidOperationError(f"No valid step found: {result.failed}")
        logger.debug(f"Applied {step.json_id} step", step=step.to_json())
