"""
Command-line interface for the book condensing workflow.

Usage (from project root):
    python -m workflows.book_condensing.cli run book.txt
    python -m workflows.book_condensing.cli resume 2024-05-01_14-30-a1b2c3
    python -m workflows.book_condensing.cli rerun-stage 2024-05-01_14-30-a1b2c3 7
    python -m workflows.book_condensing.cli inspect 2024-05-01_14-30-a1b2c3

Checkpoints go to CONDENSER_CHECKPOINT_DIR (default .condenser/checkpoints);
the condensed book is written to .outputs/<run_id>.md unless --output is
given (a .json path gets the structured form).
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import anthropic
from langchain_core.tracers.langchain import wait_for_all_tracers

from core.checkpoint import CheckpointError, FileCheckpointStore
from core.config import configure_logging, get_checkpoint_dir
from core.logging import end_run, start_run
from workflows.shared.llm_utils import LangChainOracle, ModelTier
from workflows.shared.retry_utils import RetryPolicy

from .api import condense_book, inspect_run, rerun_stage, resume_book
from .assembly import CondensedBook
from .config import CondensingConfig
from .errors import CondensingError
from .state import generate_run_id

logger = logging.getLogger(__name__)

OUTPUT_DIR = Path(".outputs")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="condense",
        description="Condense a long book into a shorter, structured edition",
    )
    parser.add_argument(
        "--checkpoint-dir",
        type=Path,
        default=None,
        help="Checkpoint root (default: CONDENSER_CHECKPOINT_DIR or .condenser/checkpoints)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Condense a UTF-8 text file")
    run.add_argument("path", type=Path, help="Plain-text book")
    run.add_argument("--run-id", default=None, help="Run id (default: timestamped)")
    _add_run_options(run)

    resume = subparsers.add_parser("resume", help="Continue an interrupted run")
    resume.add_argument("run_id")
    _add_run_options(resume)

    rerun = subparsers.add_parser("rerun-stage", help="Re-run one chapter stage under a new run id")
    rerun.add_argument("run_id", help="Source run")
    rerun.add_argument("index", type=int, help="Stage index (0-based)")
    rerun.add_argument("--new-run-id", default=None)
    _add_run_options(rerun)

    inspect = subparsers.add_parser("inspect", help="Show what a run has stored")
    inspect.add_argument("run_id")

    return parser


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tier",
        choices=[tier.name.lower() for tier in ModelTier],
        default="sonnet",
        help="Model tier for every call (default: sonnet)",
    )
    parser.add_argument("--target-stage-tokens", type=int, default=None)
    parser.add_argument("--max-attempts", type=int, default=None, help="Attempts per oracle call")
    parser.add_argument("--output", type=Path, default=None, help="Output path, .md or .json")


def _config_from_args(args: argparse.Namespace) -> CondensingConfig:
    config = CondensingConfig(target_stage_tokens=args.target_stage_tokens)
    if args.max_attempts:
        config = config.with_retry_policy(RetryPolicy(max_attempts=args.max_attempts))
    return config


def _write_output(book: CondensedBook, output: Optional[Path]) -> Path:
    path = output or OUTPUT_DIR / f"{book.run_id}.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".json":
        path.write_text(json.dumps(book.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    else:
        path.write_text(book.text(), encoding="utf-8")
    return path


async def run_command(args: argparse.Namespace) -> int:
    checkpoint_dir = args.checkpoint_dir or get_checkpoint_dir()
    store = FileCheckpointStore(checkpoint_dir)

    if args.command == "inspect":
        print(json.dumps(inspect_run(store, args.run_id), indent=2, ensure_ascii=False))
        return 0

    oracle = LangChainOracle(tier=ModelTier.parse(args.tier))
    config = _config_from_args(args)

    if args.command == "run":
        text = args.path.read_text(encoding="utf-8")
        run_id = args.run_id or generate_run_id()
        start_run(run_id)
        try:
            book = await condense_book(text, oracle=oracle, store=store, run_id=run_id, settings=config)
        finally:
            end_run()
    elif args.command == "resume":
        start_run(args.run_id)
        try:
            store.cleanup_orphaned_temps(args.run_id)
            book = await resume_book(args.run_id, oracle=oracle, store=store, settings=config)
        finally:
            end_run()
    else:
        new_run_id = args.new_run_id or generate_run_id()
        start_run(new_run_id)
        try:
            result = await rerun_stage(
                args.run_id,
                args.index,
                oracle=oracle,
                store=store,
                new_run_id=new_run_id,
                settings=config,
            )
        finally:
            end_run()
        print(f"Stage {result.index} re-run as {new_run_id}: {result.output.title}")
        print(json.dumps(result.output.to_payload(), indent=2, ensure_ascii=False))
        return 0

    path = _write_output(book, args.output)
    print("=" * 60)
    print(f"Run {book.run_id} complete")
    print(f"  Stages: {book.metrics['stages']}")
    print(f"  Tokens: {book.metrics['input_tokens']:,} -> {book.metrics['output_tokens']:,}")
    print(f"  Output: {path}")
    print("=" * 60)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        return asyncio.run(run_command(args))
    except (CondensingError, CheckpointError) as e:
        logger.error(str(e))
        return 1
    except anthropic.APIError as e:
        logger.error(f"Anthropic API call failed: {e}")
        return 1
    finally:
        wait_for_all_tracers()


if __name__ == "__main__":
    sys.exit(main())
