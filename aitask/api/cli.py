"""One-shot command line runner.

Usage:
    python -m aitask.api.cli --task "sum" --inputs '{"a": 1, "b": 2}' \
        --outputs '{"result": "Number | sum"}' --model gemini-2.5-flash

Behavior:
    Builds a `RequestSpec` from the arguments, dispatches it through the
    module-default dispatcher, and prints the outcome payload as JSON. Exit code is 1
    when the dispatch failed.
"""

from dotenv import load_dotenv

load_dotenv()

import argparse
import asyncio
import json
import logging
import os
import sys

from aitask.core.dispatcher import get_dispatcher
from aitask.core.types import OUTPUT_FORMAT_JSON, OUTPUT_FORMAT_TEXT, RequestSpec


def _load_json_argument(parser: argparse.ArgumentParser, name: str, raw: str | None):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        parser.error(f"--{name} must be valid JSON")


def _load_outputs(raw: str | None):
    """Parse `--outputs` as JSON, falling back to free text."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one structured LLM task")
    parser.add_argument("--task", required=True, help="Instruction text")
    parser.add_argument("--role", default=None, help="System role text")
    parser.add_argument("--inputs", default=None, help="Input payload as a JSON object")
    parser.add_argument("--outputs", default=None, help="Output descriptor (JSON) or free-text description")
    parser.add_argument(
        "--model",
        action="append",
        default=None,
        help="Model id; repeat to build an ordered fallback list",
    )
    parser.add_argument("--provider", default=None, help="gemini | openai | openrouter | ollama")
    parser.add_argument("--format", dest="output_format", default="json", choices=["json", "text"])
    parser.add_argument("--temperature", type=float, default=0.7)
    parser.add_argument("--local", action="store_true", help="Use the local backend only")
    parser.add_argument("--best", action="store_true", help="Use the default provider's best model")
    return parser


def main(argv=None):
    """CLI entrypoint.

    Error handling:
        - Invalid `--inputs` JSON is reported through `argparse`.
        - A failed dispatch prints the error kind and detail to stderr and exits 1.
    """
    logging.basicConfig(level=os.getenv("AITASK_LOG_LEVEL", "WARNING").upper())

    parser = build_parser()
    args = parser.parse_args(argv)

    inputs = _load_json_argument(parser, "inputs", args.inputs)
    if inputs is not None and not isinstance(inputs, dict):
        parser.error("--inputs must be a JSON object")

    config = {
        "role": args.role,
        "provider": args.provider,
        "temperature": args.temperature,
        "best_model": args.best,
    }
    if args.model:
        config["model"] = args.model[0] if len(args.model) == 1 else args.model

    spec = RequestSpec.from_call(
        config,
        args.task,
        inputs,
        _load_outputs(args.outputs),
        OUTPUT_FORMAT_TEXT if args.output_format == "text" else OUTPUT_FORMAT_JSON,
        args.local,
    )

    outcome = asyncio.run(get_dispatcher().run_detailed(spec))

    if not outcome.ok:
        print(f"Task failed ({outcome.error_kind}): {outcome.detail}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(outcome.payload, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
