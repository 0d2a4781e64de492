"""Centralized GitHub client using PyGithub.

All GitHub API calls go through this module. Object lookups use PyGithub;
calls where the raw status code and body matter (dispatch, raw file
contents, job logs) use requests directly.
"""

import functools
import logging
import os

import requests
from github import Github

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@functools.lru_cache(maxsize=1)
def get_client() -> Github:
    """Create a Github client from GITHUB_TOKEN or GH_TOKEN env var.

    Cached for the lifetime of the process since the token comes from
    environment variables which don't change during a run.
    """
    return Github(_get_token())


def _get_token() -> str:
    """Return the GitHub token from environment."""
    token = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
    if not token:
        raise RuntimeError(
            "GitHub token not found. Set GITHUB_TOKEN or GH_TOKEN environment "
            "variable (needs repo and workflow scopes to trigger runs)."
        )
    return token


def _headers(accept: str = "application/vnd.github+json") -> dict:
    return {"Authorization": f"token {_get_token()}", "Accept": accept}


def _validate_repo(repo_slug: str) -> None:
    """Validate that repo_slug is in 'owner/name' format."""
    if not repo_slug or repo_slug.count("/") != 1:
        raise ValueError(
            f"Invalid repo format: '{repo_slug}'. Expected 'owner/name'."
        )


def _check_rate_limit(client: Github) -> None:
    """Log a warning if the GitHub API rate limit is running low."""
    try:
        rate = client.get_rate_limit().core
    except Exception as e:
        logger.debug("Could not read rate limit: %s", e)
        return
    if rate.remaining < 50:
        logger.warning(
            "GitHub API rate limit low: %d/%d remaining, resets at %s",
            rate.remaining, rate.limit, rate.reset,
        )


def _format_time(value) -> str:
    return value.strftime(TIMESTAMP_FORMAT) if value else ""


def workflow_state(raw_state: str) -> str:
    """Collapse GitHub workflow states to 'active' or 'disabled'."""
    if (raw_state or "").startswith("disabled"):
        return "disabled"
    return "active" if raw_state == "active" else raw_state or "unknown"


def _workflow_record(wf) -> dict:
    return {
        "id": wf.id,
        "name": wf.name,
        "path": wf.path,
        "state": workflow_state(wf.state),
        "raw_state": wf.state,
        "html_url": wf.html_url,
    }


def _run_record(run) -> dict:
    return {
        "id": run.id,
        "url": run.html_url,
        "name": run.name,
        "status": run.status,
        "conclusion": run.conclusion or "",
        "event": run.event,
        "head_branch": run.head_branch,
        "head_sha": run.head_sha,
        "created_at": _format_time(run.created_at),
        "run_attempt": run.run_attempt,
    }


# ---------------------------------------------------------------------------
# Workflow catalog
# ---------------------------------------------------------------------------

def list_workflows(repo_slug: str) -> tuple[list[dict], bool]:
    """Get every workflow in a repository, following all pages.

    Returns (records, complete). complete is False when fewer workflows were
    received than the API reported, so callers can flag results computed
    against a partial catalog.
    """
    _validate_repo(repo_slug)
    client = get_client()
    repo = client.get_repo(repo_slug)

    paginated = repo.get_workflows()
    records = [_workflow_record(wf) for wf in paginated]

    complete = True
    try:
        total = paginated.totalCount
    except Exception as e:
        logger.debug("Could not read workflow total count: %s", e)
    else:
        if len(records) < total:
            complete = False
            logger.warning(
                "Workflow catalog for %s is partial: got %d of %d",
                repo_slug, len(records), total,
            )

    _check_rate_limit(client)
    return records, complete


def get_file_content(repo_slug: str, path: str, ref: str | None = None) -> str:
    """Get file content from a repository, optionally at a specific ref.

    Uses the GitHub Contents API with raw media type. Returns decoded text.
    """
    _validate_repo(repo_slug)
    params = {"ref": ref} if ref else {}
    resp = requests.get(
        f"{API_URL}/repos/{repo_slug}/contents/{path}",
        params=params,
        headers=_headers("application/vnd.github.raw+json"),
        timeout=30,
    )
    resp.raise_for_status()
    return resp.text


# ---------------------------------------------------------------------------
# Dispatch and runs
# ---------------------------------------------------------------------------

def trigger_workflow(
    repo_slug: str, workflow_id, ref: str, inputs: dict[str, str],
) -> dict:
    """Create a workflow_dispatch event.

    Returns {ok, status, message}. GitHub answers 204 with no body on
    success; the message carries the error text otherwise.
    """
    _validate_repo(repo_slug)
    url = f"{API_URL}/repos/{repo_slug}/actions/workflows/{workflow_id}/dispatches"
    resp = requests.post(
        url,
        json={"ref": ref, "inputs": inputs},
        headers=_headers(),
        timeout=30,
    )
    message = ""
    if not resp.ok:
        try:
            message = resp.json().get("message", "") or resp.text
        except ValueError:
            message = resp.text
    logger.debug("Dispatch %s on %s -> %d", workflow_id, ref, resp.status_code)
    return {"ok": resp.ok, "status": resp.status_code, "message": message}


def list_recent_runs(repo_slug: str, workflow_id, limit: int = 5) -> list[dict]:
    """Get the most recent runs of a workflow, newest first."""
    _validate_repo(repo_slug)
    client = get_client()
    repo = client.get_repo(repo_slug)
    runs = repo.get_workflow(workflow_id).get_runs()
    return [_run_record(run) for run in runs[:limit]]


def cancel_run(repo_slug: str, run_id: int) -> bool:
    """Cancel a workflow run. Returns True if GitHub accepted the request."""
    _validate_repo(repo_slug)
    client = get_client()
    repo = client.get_repo(repo_slug)
    return repo.get_workflow_run(run_id).cancel()


def list_failed_runs(
    repo_slug: str,
    workflow_id,
    since_date: str,
    limit: int = 100,
) -> list[dict]:
    """Get failed runs of one workflow created on or after since_date.

    since_date is an ISO date (YYYY-MM-DD).
    """
    _validate_repo(repo_slug)
    client = get_client()
    repo = client.get_repo(repo_slug)
    runs = repo.get_workflow(workflow_id).get_runs(
        status="failure", created=f">={since_date}",
    )
    return [_run_record(run) for run in runs[:limit]]


def list_failed_jobs(repo_slug: str, run_id: int) -> list[dict]:
    """Get failed jobs for a specific workflow run.

    Returns dicts with keys: id, name, conclusion, steps, completed_at.
    Filters to conclusion == "failure".
    """
    _validate_repo(repo_slug)
    client = get_client()
    repo = client.get_repo(repo_slug)
    run = repo.get_workflow_run(run_id)

    results = []
    for job in run.jobs():
        if job.conclusion == "failure":
            steps = []
            for step in job.steps:
                steps.append({
                    "name": step.name,
                    "conclusion": step.conclusion,
                    "number": step.number,
                })
            results.append({
                "id": job.id,
                "name": job.name,
                "conclusion": job.conclusion,
                "steps": steps,
                "completed_at": _format_time(job.completed_at),
            })

    return results


def download_job_log(repo_slug: str, job_id: int) -> str:
    """Download the log for a specific job.

    Uses the GitHub API to fetch job logs, following the 302 redirect.
    Returns log text.
    """
    _validate_repo(repo_slug)
    resp = requests.get(
        f"{API_URL}/repos/{repo_slug}/actions/jobs/{job_id}/logs",
        headers=_headers(),
        allow_redirects=True,
        timeout=60,
    )
    resp.raise_for_status()
    return resp.text
