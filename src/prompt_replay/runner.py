"""
prompt-replay CLI Runner

Replays a draft prompt against historical traces and compares the new output
with what production produced.

Usage:
    python -m prompt_replay.runner --event-file event.json
    python -m prompt_replay.runner --prompt-file draft.txt --trace-ids t1,t2 \
        --provider openai --model gpt-4.1-mini --name intake-v2 \
        --prompt-name workflow/intake-acceptance-criteria
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

from prompt_replay.domain.constants import REASONING_EFFORTS, VERBOSITY_LEVELS, ModelProvider
from prompt_replay.domain.entities import EvalRunRequest, EvalRunResult
from prompt_replay.replay_config import load_config
from prompt_replay.use_cases.run_orchestrator import ReplayServices, handle_run_event, run_traces_eval

OUTPUT_PREVIEW_CHARS = 60


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="prompt-replay: Replay a draft prompt against historical traces",
    )
    parser.add_argument(
        "--event-file",
        default=None,
        help="Path to a JSON run trigger payload (overrides the individual options)",
    )
    parser.add_argument(
        "--prompt-file",
        default=None,
        help="Path to the draft prompt template",
    )
    parser.add_argument(
        "--trace-ids",
        default=None,
        help="Comma-separated list of trace ids to replay",
    )
    parser.add_argument(
        "--provider",
        choices=[p.value for p in ModelProvider],
        default=None,
        help="Model provider",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Model name (e.g. gpt-4.1-mini, gemini-2.5-flash)",
    )
    parser.add_argument(
        "--name",
        default=None,
        help="Evaluation name",
    )
    parser.add_argument(
        "--prompt-name",
        default=None,
        help="Logical name of the production prompt (used to pick the observation)",
    )
    parser.add_argument(
        "--prompt-version",
        type=int,
        default=None,
        help="Version of the production prompt (recorded only)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Traces evaluated in parallel per batch (default: REPLAY_DEFAULT_CONCURRENCY from .env)",
    )
    parser.add_argument(
        "--reasoning-effort",
        choices=list(REASONING_EFFORTS),
        default=None,
        help="Reasoning effort hint for chat providers",
    )
    parser.add_argument(
        "--verbosity",
        choices=list(VERBOSITY_LEVELS),
        default=None,
        help="Verbosity hint for chat providers",
    )
    parser.add_argument(
        "--output-dir",
        default="results",
        help="Directory for output CSV files (default: results)",
    )
    return parser.parse_args(argv)


def build_request(args: argparse.Namespace, default_concurrency: int) -> EvalRunRequest:
    """
    Build a run request from CLI options

    Raises:
        ValueError: If a required option is missing
    """
    missing = [
        flag for flag, value in (
            ("--prompt-file", args.prompt_file),
            ("--trace-ids", args.trace_ids),
            ("--provider", args.provider),
            ("--model", args.model),
            ("--name", args.name),
        )
        if not value
    ]
    if missing:
        raise ValueError(f"Missing required options: {', '.join(missing)}")

    draft_prompt = Path(args.prompt_file).read_text(encoding="utf-8")
    trace_ids = [t.strip() for t in args.trace_ids.split(",") if t.strip()]

    return EvalRunRequest(
        draft_prompt=draft_prompt,
        trace_ids=tuple(trace_ids),
        model=args.model,
        provider=ModelProvider(args.provider),
        eval_name=args.name,
        original_prompt_name=args.prompt_name,
        original_prompt_version=args.prompt_version,
        concurrency=args.concurrency if args.concurrency else default_concurrency,
        reasoning_effort=args.reasoning_effort,
        verbosity=args.verbosity,
    )


def results_to_dataframe(result: EvalRunResult) -> pd.DataFrame:
    """Per-trace results as a flat table"""
    rows = []
    for r in result.results:
        rows.append({
            "eval_id": result.eval_id,
            "eval_name": result.eval_name,
            "trace_id": r.trace_id,
            "success": r.success,
            "variable_source": r.variable_source,
            "prompt_format": r.prompt_format.value if r.prompt_format else None,
            "schema_source": r.schema_source,
            "tools_source": r.tools_source,
            "latency_ms": r.latency_ms,
            "input_tokens": r.token_usage.input if r.token_usage else None,
            "output_tokens": r.token_usage.output if r.token_usage else None,
            "tool_call_count": len(r.tool_calls) if r.tool_calls else 0,
            "output": r.output,
            "original_production_output": r.original_production_output,
            "parsed": json.dumps(r.parsed, ensure_ascii=False) if r.parsed is not None else None,
            "input": json.dumps(r.input, ensure_ascii=False) if r.input is not None else None,
            "error": r.error,
        })
    return pd.DataFrame(rows)


def _preview(text: str | None) -> str:
    if not text:
        return ""
    flat = " ".join(text.split())
    if len(flat) <= OUTPUT_PREVIEW_CHARS:
        return flat
    return flat[:OUTPUT_PREVIEW_CHARS - 3] + "..."


def print_results(result: EvalRunResult) -> None:
    print("=== Per-trace Results ===\n")
    print(f"  {'Trace':<36} {'Status':>7} {'Latency':>9} {'Source':<22} Output")
    print(f"  {'-'*36} {'-'*7} {'-'*9} {'-'*22} {'-'*OUTPUT_PREVIEW_CHARS}")
    for r in result.results:
        status = "OK" if r.success else "FAILED"
        latency = f"{r.latency_ms}ms" if r.latency_ms is not None else "-"
        detail = _preview(r.output) if r.success else _preview(f"ERROR: {r.error}")
        print(
            f"  {r.trace_id:<36} "
            f"{status:>7} "
            f"{latency:>9} "
            f"{(r.variable_source or '-'):<22} "
            f"{detail}"
        )
    print()

    print("=== Summary ===\n")
    print(f"  Eval ID:     {result.eval_id}")
    print(f"  Traces:      {result.total_traces}")
    print(f"  Succeeded:   {result.success_count}")
    print(f"  Failed:      {result.failure_count}")
    print(f"  Duration:    {result.duration_ms}ms")
    print(f"  Run trace:   {result.langfuse_trace_id}")
    print(f"  Results URL: {result.results_url or '(not stored)'}")
    print()


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)

    # Load config
    config = load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    services = ReplayServices.from_config(config)

    if args.event_file:
        print(f"\n=== Loading run event: {args.event_file} ===\n")
        with open(args.event_file, "r", encoding="utf-8") as f:
            event = json.load(f)
        result = handle_run_event(event, services)
    else:
        try:
            request = build_request(args, config.run.default_concurrency)
        except ValueError as e:
            print(f"ERROR: {e}")
            sys.exit(2)

        print(f"\n=== Replaying {len(request.trace_ids)} traces ===\n")
        print(f"  Eval:        {request.eval_name}")
        print(f"  Provider:    {request.provider.value}")
        print(f"  Model:       {request.model}")
        print(f"  Prompt:      {request.original_prompt_name or '-'}")
        print(f"  Concurrency: {request.concurrency}")
        print()
        result = run_traces_eval(request, services)

    print_results(result)

    # Save CSV
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    results_path = output_dir / f"replay_results_{result.eval_id}.csv"
    results_to_dataframe(result).to_csv(results_path, index=False)

    print(f"=== Output ===\n")
    print(f"  Per-trace results: {results_path}")
    print()

    if result.total_traces and result.success_count == 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
