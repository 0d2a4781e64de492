"""Tests for wfctl.github -- validation, env var handling, record building."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from wfctl.github import (
    _get_token,
    _validate_repo,
    get_file_content,
    list_recent_runs,
    list_workflows,
    trigger_workflow,
    workflow_state,
)

# ---------------------------------------------------------------------------
# _validate_repo
# ---------------------------------------------------------------------------

class TestValidateRepo:
    def test_valid_owner_name(self):
        _validate_repo("owner/name")  # should not raise

    def test_empty_string(self):
        with pytest.raises(ValueError, match="Invalid repo format"):
            _validate_repo("")

    def test_no_slash(self):
        with pytest.raises(ValueError, match="Invalid repo format"):
            _validate_repo("no-slash")

    def test_too_many_slashes(self):
        with pytest.raises(ValueError, match="Invalid repo format"):
            _validate_repo("a/b/c")


# ---------------------------------------------------------------------------
# _get_token
# ---------------------------------------------------------------------------

class TestGetToken:
    def test_github_token_set(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test123")
        monkeypatch.delenv("GH_TOKEN", raising=False)
        assert _get_token() == "ghp_test123"

    def test_gh_token_fallback(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.setenv("GH_TOKEN", "ghp_fallback")
        assert _get_token() == "ghp_fallback"

    def test_neither_set_raises(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with pytest.raises(RuntimeError, match="GitHub token not found"):
            _get_token()


# ---------------------------------------------------------------------------
# workflow_state
# ---------------------------------------------------------------------------

class TestWorkflowState:
    def test_active(self):
        assert workflow_state("active") == "active"

    @pytest.mark.parametrize("raw", [
        "disabled_manually", "disabled_inactivity", "disabled_fork",
    ])
    def test_disabled_variants(self, raw):
        assert workflow_state(raw) == "disabled"

    def test_other_states_kept(self):
        assert workflow_state("deleted") == "deleted"
        assert workflow_state("") == "unknown"


# ---------------------------------------------------------------------------
# list_workflows / list_recent_runs
# ---------------------------------------------------------------------------

def _mock_client():
    client = MagicMock()
    client.get_rate_limit.return_value.core.remaining = 5000
    return client


def _wf(wf_id, name, state="active"):
    return SimpleNamespace(
        id=wf_id, name=name, path=f".github/workflows/{wf_id}.yml",
        state=state, html_url=f"https://github.com/o/r/actions/workflows/{wf_id}.yml",
    )


class TestListWorkflows:
    def _paginated(self, workflows, total):
        paginated = MagicMock()
        paginated.__iter__.return_value = iter(workflows)
        paginated.totalCount = total
        return paginated

    def test_records(self):
        client = _mock_client()
        client.get_repo.return_value.get_workflows.return_value = self._paginated(
            [_wf(1, "CI"), _wf(2, "Nightly", "disabled_manually")], 2)
        with patch("wfctl.github.get_client", return_value=client):
            records, complete = list_workflows("owner/name")

        assert complete is True
        assert records[0] == {
            "id": 1, "name": "CI", "path": ".github/workflows/1.yml",
            "state": "active", "raw_state": "active",
            "html_url": "https://github.com/o/r/actions/workflows/1.yml",
        }
        assert records[1]["state"] == "disabled"

    def test_partial_when_short(self):
        client = _mock_client()
        client.get_repo.return_value.get_workflows.return_value = self._paginated(
            [_wf(1, "CI")], 3)
        with patch("wfctl.github.get_client", return_value=client):
            records, complete = list_workflows("owner/name")
        assert len(records) == 1
        assert complete is False

    def test_invalid_repo(self):
        with pytest.raises(ValueError, match="Invalid repo format"):
            list_workflows("bad")


class TestListRecentRuns:
    def test_run_records(self):
        run = SimpleNamespace(
            id=77, html_url="https://github.com/o/r/actions/runs/77", name="CI",
            status="queued", conclusion=None, event="workflow_dispatch",
            head_branch="main", head_sha="abc",
            created_at=datetime(2025, 1, 15, 10, 0, 4, tzinfo=UTC), run_attempt=1,
        )
        client = _mock_client()
        workflow = client.get_repo.return_value.get_workflow.return_value
        workflow.get_runs.return_value = [run]
        with patch("wfctl.github.get_client", return_value=client):
            runs = list_recent_runs("owner/name", 5, limit=5)

        assert runs == [{
            "id": 77, "url": "https://github.com/o/r/actions/runs/77",
            "name": "CI", "status": "queued", "conclusion": "",
            "event": "workflow_dispatch", "head_branch": "main",
            "head_sha": "abc", "created_at": "2025-01-15T10:00:04Z",
            "run_attempt": 1,
        }]


# ---------------------------------------------------------------------------
# trigger_workflow / get_file_content
# ---------------------------------------------------------------------------

class TestTriggerWorkflow:
    def test_accepted(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        with patch("wfctl.github.requests.post",
                   return_value=MagicMock(ok=True, status_code=204)) as mock_post:
            result = trigger_workflow("owner/name", 5, "main", {"environment": "qa"})

        assert result == {"ok": True, "status": 204, "message": ""}
        url = mock_post.call_args.args[0]
        assert url.endswith("/repos/owner/name/actions/workflows/5/dispatches")
        assert mock_post.call_args.kwargs["json"] == {
            "ref": "main", "inputs": {"environment": "qa"},
        }

    def test_rejected_message(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        resp = MagicMock(ok=False, status_code=422)
        resp.json.return_value = {"message": "Unexpected inputs provided"}
        with patch("wfctl.github.requests.post", return_value=resp):
            result = trigger_workflow("owner/name", 5, "main", {"x": "1"})
        assert result == {
            "ok": False, "status": 422, "message": "Unexpected inputs provided",
        }

    def test_non_json_error_body(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        resp = MagicMock(ok=False, status_code=502, text="Bad Gateway")
        resp.json.side_effect = ValueError("not json")
        with patch("wfctl.github.requests.post", return_value=resp):
            result = trigger_workflow("owner/name", 5, "main", {})
        assert result["message"] == "Bad Gateway"


class TestGetFileContent:
    def test_ref_passed(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        resp = MagicMock(text="on: workflow_dispatch\n")
        with patch("wfctl.github.requests.get", return_value=resp) as mock_get:
            text = get_file_content("owner/name", ".github/workflows/ci.yml", "dev")
        assert text == "on: workflow_dispatch\n"
        assert mock_get.call_args.kwargs["params"] == {"ref": "dev"}
        assert "raw" in mock_get.call_args.kwargs["headers"]["Accept"]
