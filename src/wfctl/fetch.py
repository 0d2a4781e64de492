#!/usr/bin/env python3
"""Collect failed GitHub Actions runs and their AI error summaries.

Looks at the active workflows of a repository, counts failed runs in the
lookback window, and gathers one summary per run for pattern mining.
"""

import logging
from datetime import UTC, datetime, timedelta

from wfctl import github
from wfctl.summarize import extract_ai_summary, summarize_log

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKFLOWS = 10
DEFAULT_MAX_RUNS = 50

# Generated or scaffold workflows that never represent a real suite.
EXCLUDED_NAME_MARKERS = ("template", "auto test pr", "auto-test-pr")
EXCLUDED_PATH_MARKERS = ("template", "auto-test-pr.yml", "auto_test_pr")


def filter_runs_by_date(runs: list[dict], since_date: str) -> list[dict]:
    """Filter runs to only include those since the given ISO date."""
    if not runs:
        return []
    cutoff = datetime.fromisoformat(since_date).replace(tzinfo=UTC)
    result = []
    for run in runs:
        created_at = datetime.fromisoformat(
            run["created_at"].replace("Z", "+00:00")
        )
        if created_at >= cutoff:
            result.append(run)
    return result


def parse_list_arg(value: str) -> list[str] | None:
    """Parse a comma-separated or wildcard argument.

    Returns None for '*' (meaning 'all'), or a list of values.
    """
    if value == "*":
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def is_analyzable(workflow: dict) -> bool:
    """Active workflows only, minus templates and per-PR generated ones."""
    name = (workflow.get("name") or "").lower()
    path = (workflow.get("path") or "").lower()
    if any(marker in name for marker in EXCLUDED_NAME_MARKERS):
        return False
    if any(marker in path for marker in EXCLUDED_PATH_MARKERS):
        return False
    return workflow.get("state") == "active"


def _matches_filter(workflow: dict, names: list[str] | None) -> bool:
    if not names:
        return True
    wanted = {n.lower() for n in names}
    path = workflow.get("path") or ""
    return (
        (workflow.get("name") or "").lower() in wanted
        or path.lower() in wanted
        or path.rsplit("/", 1)[-1].lower() in wanted
    )


def since_date_for(lookback_days: int, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return (now - timedelta(days=lookback_days)).strftime("%Y-%m-%d")


def collect_failed_runs(
    repo: str,
    lookback_days: int = 7,
    workflows: list[str] | None = None,
    max_workflows: int = DEFAULT_MAX_WORKFLOWS,
    max_runs: int = DEFAULT_MAX_RUNS,
) -> dict:
    """Collect failed runs of the most-failing workflows.

    Returns a dict with keys:
      failed_runs      all failed runs in the window (with workflow_name)
      failure_counts   {workflow name: failed run count}, most failures first
      runs             the runs to summarize: top workflows only, newest
                       first, at most max_runs
      workflows_analyzed, partial_catalog, since_date
    """
    since_date = since_date_for(lookback_days)
    catalog, complete = github.list_workflows(repo)
    candidates = [
        wf for wf in catalog
        if is_analyzable(wf) and _matches_filter(wf, workflows)
    ]
    logger.info("Found %d active workflows to analyze", len(candidates))

    failed_runs = []
    failure_counts: dict[str, int] = {}
    for wf in candidates:
        try:
            runs = github.list_failed_runs(repo, wf["id"], since_date)
        except Exception as e:
            logger.warning("Could not list runs for %r: %s", wf["name"], e)
            continue
        runs = filter_runs_by_date(runs, since_date)
        if not runs:
            continue
        failure_counts[wf["name"]] = len(runs)
        for run in runs:
            failed_runs.append({**run, "workflow_name": wf["name"],
                                "workflow_id": wf["id"]})

    ranked = sorted(failure_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    top = {name for name, _ in ranked[:max_workflows]}
    to_analyze = sorted(
        (r for r in failed_runs if r["workflow_name"] in top),
        key=lambda r: r.get("created_at", ""),
        reverse=True,
    )[:max_runs]

    logger.info("Found %d failed runs across %d workflows since %s",
                len(failed_runs), len(failure_counts), since_date)
    return {
        "failed_runs": failed_runs,
        "failure_counts": dict(ranked),
        "runs": to_analyze,
        "workflows_analyzed": len(failure_counts),
        "partial_catalog": not complete,
        "since_date": since_date,
    }


def _run_summary(
    repo: str, run: dict, summarize_missing: bool, model: str,
) -> str | None:
    jobs = github.list_failed_jobs(repo, run["id"])
    logs = []
    for job in jobs:
        log_text = github.download_job_log(repo, job["id"])
        summary = extract_ai_summary(log_text)
        if summary:
            return summary
        logs.append((job.get("name", ""), log_text))

    if summarize_missing and logs:
        name, log_text = logs[0]
        logger.info("  No AI summary in logs, asking the summarizer agent")
        return summarize_log(log_text, job_name=name, model=model)
    return None


def collect_summaries(
    repo: str,
    runs: list[dict],
    summarize_missing: bool = False,
    model: str = "sonnet",
) -> list[dict]:
    """Build one mining record per run that has a summary.

    Records have keys: summary, run_id, workflow_name. A run whose jobs or
    logs cannot be fetched is logged and skipped.
    """
    records = []
    total = len(runs)
    for i, run in enumerate(runs, 1):
        logger.info("[%d/%d] Fetching summary for run %s...", i, total, run["id"])
        try:
            summary = _run_summary(repo, run, summarize_missing, model)
        except Exception as e:
            logger.warning("  Could not get summary for run %s: %s", run["id"], e)
            continue
        if not summary or not summary.strip():
            logger.debug("  No summary found")
            continue
        records.append({
            "summary": summary,
            "run_id": run["id"],
            "workflow_name": run.get("workflow_name", ""),
        })

    logger.info("Collected %d summaries from %d runs", len(records), total)
    return records
