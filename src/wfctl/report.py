#!/usr/bin/env python3
"""Write mined failure patterns into failures.md and failures.json.

- failures.md    -- top failure patterns and per-workflow counts (human-readable)
- failures.json  -- the same analysis as structured data
"""

import json
import logging
from datetime import UTC, datetime, timedelta

logger = logging.getLogger(__name__)

TOP_PATTERNS = 10


def build_period(lookback_days: int, now: datetime | None = None) -> dict:
    now = now or datetime.now(UTC)
    start = now - timedelta(days=lookback_days)
    return {
        "start_date": start.strftime("%Y-%m-%d"),
        "end_date": now.strftime("%Y-%m-%d"),
        "days": lookback_days,
    }


def build_analysis(
    patterns: list[dict],
    failed_runs: list[dict],
    failure_counts: dict[str, int],
    period: dict,
    top: int = TOP_PATTERNS,
    summaries: int = 0,
    partial_catalog: bool = False,
) -> dict:
    """Assemble the failure analysis from mined patterns and run counts."""
    workflow_counts = [
        {"workflow_name": name, "failed_runs": count}
        for name, count in sorted(
            failure_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]
    return {
        "period": period,
        "total_failed_runs": len({r["id"] for r in failed_runs}),
        "workflows_analyzed": len(failure_counts),
        "summaries_analyzed": summaries,
        "partial_catalog": partial_catalog,
        "top_failures": patterns[:top],
        "workflow_failure_counts": workflow_counts[:top],
    }


def _cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _write_patterns_table(f, patterns: list[dict]) -> None:
    f.write("| # | Pattern | Runs | Mentions | Workflows |\n")
    f.write("|---|---------|------|----------|-----------|\n")
    for idx, pattern in enumerate(patterns, 1):
        workflows = ", ".join(pattern["workflows"])
        f.write(
            f"| {idx} | {_cell(pattern['name'])} "
            f"| {pattern['run_count']} "
            f"| {pattern['mentions']} "
            f"| {_cell(workflows)} |\n"
        )


def _write_detail_section(f, idx: int, pattern: dict) -> None:
    f.write(f"### {idx}. {pattern['name']}\n\n")
    f.write(f"- **Failed runs:** {pattern['run_count']}\n")
    f.write(f"- **Matched by:** {pattern['rule']}\n")
    if pattern["workflows"]:
        f.write(f"- **Workflows:** {', '.join(pattern['workflows'])}\n")
    f.write(f"- **Run IDs:** {', '.join(pattern['run_ids'])}\n")

    if pattern["examples"]:
        f.write("- **Examples:**\n")
        for example in pattern["examples"]:
            where = example["workflow"] or f"run {example['run_id']}"
            f.write(f"  - {where}: `{example['excerpt']}`\n")
    f.write("\n")


def write_report_md(path: str, analysis: dict) -> None:
    """Write the markdown report file."""
    period = analysis["period"]
    patterns = analysis["top_failures"]
    with open(path, "w") as f:
        f.write("# CI Failure Patterns\n\n")
        f.write(f"**Period:** {period['start_date']} to {period['end_date']} "
                f"({period['days']} days)\n\n")
        f.write(f"**{analysis['total_failed_runs']} failed runs** across "
                f"**{analysis['workflows_analyzed']} workflows**; "
                f"{analysis['summaries_analyzed']} AI summaries analyzed.\n\n")
        if analysis["partial_catalog"]:
            f.write("> The workflow list was incomplete; some workflows may "
                    "be missing from this analysis.\n\n")

        f.write("## Top Failure Patterns\n\n")
        if patterns:
            _write_patterns_table(f, patterns)
        else:
            f.write("No recognizable failure patterns.\n")
        f.write("\n")

        f.write("## Failed Runs by Workflow\n\n")
        f.write("| Workflow | Failed Runs |\n")
        f.write("|----------|-------------|\n")
        for entry in analysis["workflow_failure_counts"]:
            f.write(f"| {_cell(entry['workflow_name'])} | {entry['failed_runs']} |\n")
        f.write("\n")

        if patterns:
            f.write("---\n\n")
            f.write("## Patterns (Detail)\n\n")
            for idx, pattern in enumerate(patterns, 1):
                _write_detail_section(f, idx, pattern)

    logger.info("Wrote %s", path)


def write_report_json(path: str, analysis: dict) -> None:
    """Write the JSON report file."""
    with open(path, "w") as f:
        json.dump(analysis, f, indent=2)
    logger.info("Wrote %s", path)


def log_summary(analysis: dict) -> None:
    logger.info("")
    logger.info("=== CI Failure Patterns ===")
    logger.info("")
    logger.info("  Failed runs: %d in %d workflows",
                analysis["total_failed_runs"], analysis["workflows_analyzed"])
    logger.info("")
    for i, pattern in enumerate(analysis["top_failures"], 1):
        logger.info("  %2d. %-55s  runs=%2d  mentions=%2d",
                    i, pattern["name"], pattern["run_count"], pattern["mentions"])
