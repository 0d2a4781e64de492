"""Shared fixtures and helpers for wfctl tests."""


def make_workflow(name, path=None, wf_id=None, state="active"):
    """Build a workflow record the way wfctl.github returns them."""
    if path is None:
        slug = "_".join(name.lower().replace("-", " ").split())
        path = f".github/workflows/{slug}.yml"
    if wf_id is None:
        wf_id = abs(hash(name)) % 10_000_000
    return {
        "id": wf_id,
        "name": name,
        "path": path,
        "state": state,
        "raw_state": state if state != "disabled" else "disabled_manually",
        "html_url": f"https://github.com/org/repo/actions/workflows/{path.rsplit('/', 1)[-1]}",
    }


def make_catalog(names):
    """Build a catalog with sequential ids from a list of workflow names."""
    return [make_workflow(name, wf_id=100 + i) for i, name in enumerate(names)]


def make_run(run_id, created_at="2025-01-15T10:00:00Z", **overrides):
    """Build a run record the way wfctl.github returns them."""
    run = {
        "id": run_id,
        "url": f"https://github.com/org/repo/actions/runs/{run_id}",
        "name": "CI",
        "status": "completed",
        "conclusion": "failure",
        "event": "workflow_dispatch",
        "head_branch": "main",
        "head_sha": "abc123",
        "created_at": created_at,
        "run_attempt": 1,
    }
    run.update(overrides)
    return run


DISPATCH_WORKFLOW_YAML = """\
name: QA US - CORE UX REGRESSION
on:
  workflow_dispatch:
    inputs:
      environment:
        description: Target environment
        required: true
        default: qa
        type: choice
        options: [qa, staging, prod]
      tags:
        description: Test tags to run
        required: false
  schedule:
    - cron: "0 6 * * *"
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - run: npm test
"""

DISPATCH_NO_INPUTS_YAML = """\
name: Nightly
on:
  workflow_dispatch:
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - run: make
"""

PUSH_ONLY_YAML = """\
name: CI
on:
  push:
    branches: [main]
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - run: make
"""
