#!/usr/bin/env python3
"""Unified CLI for wfctl -- resolve, trigger and analyze GitHub Actions workflows."""

import argparse
import json
import logging
import os
import sys

from wfctl import __version__

STATUS_OK = 0
STATUS_ERROR = 1
STATUS_NOT_FOUND = 2
STATUS_AMBIGUOUS = 3
STATUS_DISPATCH_REJECTED = 4
STATUS_UNSUPPORTED_TRIGGER = 5
STATUS_NO_RESULT = 20

EXIT_CODES = {
    "not-found": STATUS_NOT_FOUND,
    "ambiguous": STATUS_AMBIGUOUS,
    "dispatch-rejected": STATUS_DISPATCH_REJECTED,
    "unsupported-trigger": STATUS_UNSUPPORTED_TRIGGER,
    "run-id-unavailable": STATUS_NO_RESULT,
}

logger = logging.getLogger(__name__)


def _exit_code(kind: str | None) -> int:
    if kind is None:
        return STATUS_OK
    return EXIT_CODES.get(kind, STATUS_ERROR)


def _load_catalog(repo: str) -> list[dict]:
    from wfctl.github import list_workflows
    catalog, complete = list_workflows(repo)
    if not complete:
        logger.warning("Workflow list is incomplete; results may miss workflows")
    return catalog


def _resolve_one(args) -> dict:
    """Resolve args.query against the repo catalog. Raises ResolutionError."""
    from wfctl.resolve import load_aliases, resolve
    catalog = _load_catalog(args.repo)
    aliases = load_aliases(getattr(args, "aliases", None))
    return resolve(args.query, catalog, aliases=aliases)


def cmd_workflows(args):
    from wfctl.github import get_file_content
    from wfctl.inputs import parse_workflow_definition

    try:
        catalog = _load_catalog(args.repo)
    except Exception as e:
        logger.error("Failed to list workflows: %s", e)
        return STATUS_ERROR

    for wf in sorted(catalog, key=lambda w: w["name"].lower()):
        line = f"{wf['state']:<8}  {wf['name']}  ({wf['path']})"
        if args.inputs:
            try:
                definition = parse_workflow_definition(
                    get_file_content(args.repo, wf["path"]))
            except Exception as e:
                logger.warning("Could not read %s: %s", wf["path"], e)
                definition = {"dispatchable": None, "inputs": []}
            if definition["dispatchable"] is False:
                line += "  [no workflow_dispatch]"
            elif definition["inputs"]:
                names = ", ".join(
                    i["name"] + ("*" if i["required"] else "")
                    for i in definition["inputs"])
                line += f"  inputs: {names}"
        print(line)
    return STATUS_OK


def cmd_resolve(args):
    from wfctl.errors import ResolutionError

    try:
        resolution = _resolve_one(args)
    except ResolutionError as e:
        logger.error("%s", e)
        return _exit_code(e.kind)
    except Exception as e:
        logger.error("Failed to resolve workflow: %s", e)
        return STATUS_ERROR

    wf = resolution["workflow"]
    if args.json:
        print(json.dumps(resolution, indent=2))
    else:
        print(f"{wf['name']}  ({wf['path']}, id={wf['id']}, tier={resolution['tier']})")
    return STATUS_OK


def cmd_trigger(args):
    from wfctl.dispatch import DispatchCoordinator
    from wfctl.inputs import parse_input_args
    from wfctl.metrics import Metrics
    from wfctl.resolve import load_aliases

    try:
        inputs = parse_input_args(args.input)
        aliases = load_aliases(args.aliases)
    except ValueError as e:
        logger.error("%s", e)
        return STATUS_ERROR

    metrics = Metrics()
    coordinator = DispatchCoordinator(
        args.repo, aliases=aliases, max_polls=args.max_polls, metrics=metrics,
    )
    try:
        result = coordinator.dispatch(args.query, inputs=inputs, branch=args.branch)
    except Exception as e:
        logger.error("Failed to trigger workflow: %s", e)
        return STATUS_ERROR

    if args.json:
        print(json.dumps({**result, "metrics": metrics.snapshot()}, indent=2))
    elif result["run_url"]:
        print(result["run_url"])
    if args.metrics:
        sys.stderr.write(metrics.to_prometheus())
    return _exit_code(result["error"])


def cmd_runs(args):
    from wfctl.errors import ResolutionError
    from wfctl.github import list_recent_runs

    try:
        resolution = _resolve_one(args)
        runs = list_recent_runs(args.repo, resolution["workflow"]["id"], args.limit)
    except ResolutionError as e:
        logger.error("%s", e)
        return _exit_code(e.kind)
    except Exception as e:
        logger.error("Failed to fetch runs: %s", e)
        return STATUS_ERROR

    for run in runs:
        print(f"{run['id']}  {run['created_at']}  {run['status']:<11}  "
              f"{run['conclusion'] or '-':<9}  {run['head_branch']}  {run['url']}")
    return STATUS_OK


def cmd_cancel(args):
    from wfctl.github import cancel_run

    try:
        accepted = cancel_run(args.repo, args.run_id)
    except Exception as e:
        logger.error("Failed to cancel run %s: %s", args.run_id, e)
        return STATUS_ERROR
    if not accepted:
        logger.error("GitHub did not accept the cancellation of run %s", args.run_id)
        return STATUS_ERROR
    logger.info("Cancellation requested for run %s", args.run_id)
    return STATUS_OK


def cmd_failures(args):
    """Chain all steps: collect runs -> collect summaries -> mine -> report."""
    from wfctl.fetch import collect_failed_runs, collect_summaries, parse_list_arg
    from wfctl.metrics import Metrics
    from wfctl.mine import mine
    from wfctl.report import (
        build_analysis,
        build_period,
        log_summary,
        write_report_json,
        write_report_md,
    )

    metrics = Metrics()
    base = args.output_dir
    os.makedirs(base, exist_ok=True)

    try:
        collected = collect_failed_runs(
            args.repo, args.lookback_days, parse_list_arg(args.workflow),
            max_workflows=args.max_workflows, max_runs=args.max_runs,
        )
    except Exception as e:
        logger.error("Failed to fetch runs: %s", e)
        return STATUS_ERROR

    failed_runs = collected["failed_runs"]
    metrics.incr("failed_runs", len(failed_runs))
    if not failed_runs:
        logger.info("No failed runs found.")

    records = collect_summaries(
        args.repo, collected["runs"],
        summarize_missing=args.summarize_missing, model=args.model,
    )
    patterns = mine(records, metrics=metrics)

    analysis = build_analysis(
        patterns, failed_runs, collected["failure_counts"],
        build_period(args.lookback_days), top=args.top,
        summaries=len(records), partial_catalog=collected["partial_catalog"],
    )
    write_report_md(os.path.join(base, "failures.md"), analysis)
    write_report_json(os.path.join(base, "failures.json"), analysis)
    log_summary(analysis)

    if args.metrics:
        sys.stdout.write(metrics.to_prometheus())
    return STATUS_OK if failed_runs else STATUS_NO_RESULT


def main():
    parser = argparse.ArgumentParser(
        prog="wfctl",
        description="Resolve and trigger GitHub Actions workflows by name, "
                    "and mine recurring failure patterns",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--debug", action="store_true",
        help="Enable debug logging (verbose output)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- workflows ---
    p_workflows = subparsers.add_parser(
        "workflows", help="List the workflows of a repository",
    )
    p_workflows.add_argument(
        "--repo", required=True,
        help="Target repository (owner/name)",
    )
    p_workflows.add_argument(
        "--inputs", action="store_true",
        help="Also read each definition and show its dispatch inputs",
    )
    p_workflows.set_defaults(func=cmd_workflows)

    # --- resolve ---
    p_resolve = subparsers.add_parser(
        "resolve", help="Show which workflow a name resolves to",
    )
    p_resolve.add_argument(
        "--repo", required=True,
        help="Target repository (owner/name)",
    )
    p_resolve.add_argument("query", help="Workflow name, file path or id")
    p_resolve.add_argument(
        "--aliases", default=None,
        help="YAML file mapping legacy names to workflow names or files",
    )
    p_resolve.add_argument(
        "--json", action="store_true",
        help="Print the resolution as JSON",
    )
    p_resolve.set_defaults(func=cmd_resolve)

    # --- trigger ---
    p_trigger = subparsers.add_parser(
        "trigger", help="Trigger a workflow and wait for its run id",
    )
    p_trigger.add_argument(
        "--repo", required=True,
        help="Target repository (owner/name)",
    )
    p_trigger.add_argument("query", help="Workflow name, file path or id")
    p_trigger.add_argument(
        "--branch", default=None,
        help="Branch to run on (default: main)",
    )
    p_trigger.add_argument(
        "--input", action="append", default=[], metavar="KEY=VALUE",
        help="Dispatch input; repeatable. Undeclared inputs are dropped",
    )
    p_trigger.add_argument(
        "--aliases", default=None,
        help="YAML file mapping legacy names to workflow names or files",
    )
    p_trigger.add_argument(
        "--max-polls", type=int, default=5,
        help="Times to look for the new run after dispatch (default: 5)",
    )
    p_trigger.add_argument(
        "--json", action="store_true",
        help="Print the full dispatch result and its counters as JSON",
    )
    p_trigger.add_argument(
        "--metrics", action="store_true",
        help="Print counters in Prometheus text format to stderr",
    )
    p_trigger.set_defaults(func=cmd_trigger)

    # --- runs ---
    p_runs = subparsers.add_parser(
        "runs", help="List recent runs of a workflow",
    )
    p_runs.add_argument(
        "--repo", required=True,
        help="Target repository (owner/name)",
    )
    p_runs.add_argument("query", help="Workflow name, file path or id")
    p_runs.add_argument(
        "--aliases", default=None,
        help="YAML file mapping legacy names to workflow names or files",
    )
    p_runs.add_argument(
        "--limit", type=int, default=10,
        help="Number of runs to show (default: 10)",
    )
    p_runs.set_defaults(func=cmd_runs)

    # --- cancel ---
    p_cancel = subparsers.add_parser(
        "cancel", help="Cancel a workflow run",
    )
    p_cancel.add_argument(
        "--repo", required=True,
        help="Target repository (owner/name)",
    )
    p_cancel.add_argument("run_id", type=int, help="Workflow run id")
    p_cancel.set_defaults(func=cmd_cancel)

    # --- failures ---
    p_failures = subparsers.add_parser(
        "failures",
        help="Mine failure patterns from AI summaries of failed runs",
    )
    p_failures.add_argument(
        "--repo", required=True,
        help="Target repository (owner/name)",
    )
    p_failures.add_argument(
        "--lookback-days", type=int, default=7,
        help="Look-back period in days (default: 7)",
    )
    p_failures.add_argument(
        "--workflow", default="*",
        help="Workflow names or files, comma-separated, or * for all (default: *)",
    )
    p_failures.add_argument(
        "--max-workflows", type=int, default=10,
        help="Analyze runs of this many most-failing workflows (default: 10)",
    )
    p_failures.add_argument(
        "--max-runs", type=int, default=50,
        help="Maximum runs to fetch summaries for (default: 50)",
    )
    p_failures.add_argument(
        "--top", type=int, default=10,
        help="Number of patterns in the report (default: 10)",
    )
    p_failures.add_argument(
        "--output-dir", default=".",
        help="Directory for output files (default: current directory)",
    )
    p_failures.add_argument(
        "--summarize-missing", action="store_true",
        help="Ask a Claude agent to summarize runs that have no AI summary",
    )
    p_failures.add_argument(
        "--model", default="sonnet",
        help="Claude model for the summarizer agent (default: sonnet)",
    )
    p_failures.add_argument(
        "--metrics", action="store_true",
        help="Print counters in Prometheus text format to stdout",
    )
    p_failures.set_defaults(func=cmd_failures)

    args = parser.parse_args()

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format=(
            "%(message)s" if level == logging.INFO
            else "%(asctime)s %(name)s %(levelname)s %(message)s"
        ),
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
