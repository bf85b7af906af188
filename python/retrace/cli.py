import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import structlog

from retrace import __version__
from retrace.errors import RecreateError, SchemaError, TransformError
from retrace.models import RecreateOptions, SimplifyMode
from retrace.recreate import recreate_transform
from retrace.schemas.basic import schema
from retrace.transform import Step, Transform


def _configure_logging(verbose: bool):
    # stdout carries the JSON result, so logs go to stderr.
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _load_json(path: Path) -> Any:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error parsing JSON in {path}: {e}", file=sys.stderr)
        sys.exit(1)


def _load_doc(path: Path):
    try:
        doc = schema.node_from_json(_load_json(path))
        doc.check()
    except SchemaError as e:
        print(f"Error: {path} is not a valid document: {e}", file=sys.stderr)
        sys.exit(1)
    return doc


def _load_steps(path: Path) -> List[Step]:
    data = _load_json(path)
    if not isinstance(data, list):
        print(f"Error: {path} must contain a JSON list of steps", file=sys.stderr)
        sys.exit(1)
    try:
        return [Step.from_json(schema, item) for item in data]
    except SchemaError as e:
        print(f"Error parsing steps: {e}", file=sys.stderr)
        sys.exit(1)


def _write_output(data: Any, output: Optional[Path]):
    text = json.dumps(data, indent=2)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        print(f"✅ Saved to {output}", file=sys.stderr)
    else:
        print(text)


def handle_diff(args):
    before = _load_doc(args.before)
    after = _load_doc(args.after)

    options = RecreateOptions(
        separate_mark_phase=not args.mixed_marks,
        word_diffs=args.word_diffs,
        simplify=SimplifyMode(args.simplify),
    )

    try:
        tr = recreate_transform(before, after, options)
    except RecreateError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Found {len(tr.steps)} steps.", file=sys.stderr)
    _write_output(tr.to_json(), args.output)


def handle_apply(args):
    doc = _load_doc(args.before)
    steps = _load_steps(args.steps)

    print(f"Applying {len(steps)} steps...", file=sys.stderr)
    tr = Transform(doc)
    for index, step in enumerate(steps):
        try:
            tr.step(step)
        except TransformError as e:
            print(f"Error: step {index} ({step.json_id}) failed: {e}", file=sys.stderr)
            sys.exit(1)

    _write_output(tr.doc.to_json(), args.output)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="retrace", description="Retrace: recover edit steps between two documents")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Log batch and pattern diagnostics to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_diff = subparsers.add_parser("diff", help="Compute the steps turning one document JSON into another")
    p_diff.add_argument("before", type=Path, help="Document JSON to start from")
    p_diff.add_argument("after", type=Path, help="Document JSON to arrive at")
    p_diff.add_argument("--word-diffs", action="store_true", help="Diff changed text word by word")
    p_diff.add_argument(
        "--mixed-marks",
        action="store_true",
        help="Diff mark changes together with content instead of in a separate phase",
    )
    p_diff.add_argument(
        "--simplify",
        choices=[mode.value for mode in SimplifyMode],
        default=SimplifyMode.MERGE.value,
        help="Post-processing of the steps (default: merge)",
    )
    p_diff.add_argument("-o", "--output", type=Path, help="Output file for the step JSON (default: stdout)")
    p_diff.set_defaults(func=handle_diff)

    p_apply = subparsers.add_parser("apply", help="Replay a step list on a document")
    p_apply.add_argument("before", type=Path, help="Document JSON to start from")
    p_apply.add_argument("steps", type=Path, help="JSON list of steps")
    p_apply.add_argument("-o", "--output", type=Path, help="Output file for the document JSON (default: stdout)")
    p_apply.set_defaults(func=handle_apply)
    return parser


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
