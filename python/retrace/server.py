import json
import logging
import sys
from typing import Any, Dict, List

import structlog
from mcp.server.fastmcp import FastMCP

from retrace.models import RecreateOptions, SimplifyMode
from retrace.recreate import recreate_transform
from retrace.schemas.basic import schema
from retrace.transform import Step, Transform

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio.
# CRITICAL: All logs must go to stderr. Any print to stdout will break the JSON-RPC protocol.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

mcp = FastMCP("Retrace Step Recovery Service")


def _parse_doc(data: Dict[str, Any]):
    doc = schema.node_from_json(data)
    doc.check()
    return doc


@mcp.tool()
def recreate_steps(
    before: Dict[str, Any],
    after: Dict[str, Any],
    word_diffs: bool = False,
    separate_mark_phase: bool = True,
    simplify: SimplifyMode = SimplifyMode.MERGE,
) -> str:
    """
    Computes the edit steps that turn one document into another.

    Args:
        before: Document JSON (basic schema) to start from.
        after: Document JSON (basic schema) to arrive at.
        word_diffs: If True, changed text is diffed word by word instead of character by character.
        separate_mark_phase: If True (default), formatting marks are reconciled after the content,
                             giving addMark/removeMark steps instead of text replacements.
        simplify: 'merge' (default) fuses adjacent steps, 'patterns' rebuilds join/sink/split steps,
                  'off' returns the raw steps.

    Returns:
        The step list as JSON text, or an error message.
    """
    try:
        options = RecreateOptions(separate_mark_phase=separate_mark_phase, word_diffs=word_diffs, simplify=simplify)
        tr = recreate_transform(_parse_doc(before), _parse_doc(after), options)
        return json.dumps(tr.to_json())
    except Exception as e:
        return f"Error recreating steps: {str(e)}"


@mcp.tool()
def apply_steps(before: Dict[str, Any], steps: List[Dict[str, Any]]) -> str:
    """
    Replays a step list on a document and returns the resulting document JSON.

    Args:
        before: Document JSON (basic schema).
        steps: Steps as produced by recreate_steps.
    """
    try:
        tr = Transform(_parse_doc(before))
        for step in steps:
            tr.step(Step.from_json(schema, step))
        return json.dumps(tr.doc.to_json())
    except Exception as e:
        return f"Error applying steps: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
