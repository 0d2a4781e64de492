"""Tests for wfctl.summarize -- AI summary extraction from job logs."""

from unittest.mock import AsyncMock, MagicMock, patch

import requests

from wfctl.summarize import (
    SUMMARY_MAX_CHARS,
    extract_ai_summary,
    strip_log_timestamps,
    summarize_log,
)

S3_URL = "https://qa-reports.s3.us-east-1.amazonaws.com/reports/run-81/openai_summary.txt"
OLDER_S3_URL = "https://qa-reports.s3.us-east-1.amazonaws.com/reports/run-80/openai_summary.txt"

INLINE_LOG = (
    "2025-01-15T10:00:00.1234567Z Running 42 tests\n"
    "2025-01-15T10:03:00.0000000Z ## AI Errors Summary\n"
    "2025-01-15T10:03:00.0000000Z Element not found: #pay\n"
    "\n"
    "## Artifacts\n"
)


def _response(text="", ok=True, status=200):
    resp = MagicMock()
    resp.ok = ok
    resp.status_code = status
    resp.text = text
    return resp


# ---------------------------------------------------------------------------
# strip_log_timestamps
# ---------------------------------------------------------------------------

class TestStripLogTimestamps:
    def test_strips_prefix(self):
        assert strip_log_timestamps("2025-01-15T10:00:00.1234567Z hello") == "hello"

    def test_leaves_other_text(self):
        assert strip_log_timestamps("no stamp 2025-01-15") == "no stamp 2025-01-15"


# ---------------------------------------------------------------------------
# extract_ai_summary
# ---------------------------------------------------------------------------

class TestExtractAiSummary:
    def test_empty_log(self):
        assert extract_ai_summary("") is None

    def test_no_summary(self):
        assert extract_ai_summary("Running tests\nAll passed\n") is None

    def test_linked_file_downloaded(self):
        log = f"Uploading report\nAI summary: {S3_URL}\n"
        with patch("wfctl.summarize.requests.get",
                   return_value=_response("  **Timeout**: waiting for locator X \n")) as mock_get:
            summary = extract_ai_summary(log)
        assert summary == "**Timeout**: waiting for locator X"
        assert mock_get.call_args.args[0] == S3_URL
        assert mock_get.call_args.kwargs["timeout"] == 5

    def test_last_link_wins(self):
        log = f"{OLDER_S3_URL}\nretrying\n{S3_URL}\n"
        with patch("wfctl.summarize.requests.get",
                   return_value=_response("summary")) as mock_get:
            extract_ai_summary(log)
        assert mock_get.call_args.args[0] == S3_URL

    def test_inline_section(self):
        summary = extract_ai_summary(INLINE_LOG)
        assert summary == "## AI Errors Summary\nElement not found: #pay"

    def test_download_failure_falls_back_to_inline(self):
        log = f"{S3_URL}\n" + INLINE_LOG
        with patch("wfctl.summarize.requests.get",
                   side_effect=requests.Timeout("slow")):
            summary = extract_ai_summary(log)
        assert summary.startswith("## AI Errors Summary")

    def test_download_error_status_falls_back(self):
        with patch("wfctl.summarize.requests.get",
                   return_value=_response("denied", ok=False, status=403)):
            assert extract_ai_summary(f"{S3_URL}\n") is None

    def test_capped(self):
        with patch("wfctl.summarize.requests.get",
                   return_value=_response("x" * (SUMMARY_MAX_CHARS + 500))):
            summary = extract_ai_summary(S3_URL)
        assert len(summary) == SUMMARY_MAX_CHARS


# ---------------------------------------------------------------------------
# summarize_log
# ---------------------------------------------------------------------------

class TestSummarizeLog:
    def test_empty_log_skips_agent(self):
        with patch("wfctl.summarize._run_summarizer",
                   new_callable=AsyncMock) as mock_run:
            assert summarize_log("   ") is None
        mock_run.assert_not_called()

    def test_agent_summary_returned(self):
        with patch("wfctl.summarize._run_summarizer", new_callable=AsyncMock,
                   return_value="**Network error**: 502 from /api/cart") as mock_run:
            summary = summarize_log("2025-01-15T10:00:00Z GET /api/cart 502",
                                    job_name="e2e", model="haiku")
        assert summary == "**Network error**: 502 from /api/cart"
        task, model = mock_run.call_args.args
        assert "Failed job: e2e" in task
        assert "GET /api/cart 502" in task
        assert "2025-01-15T10:00:00Z" not in task
        assert model == "haiku"

    def test_blank_agent_output(self):
        with patch("wfctl.summarize._run_summarizer", new_callable=AsyncMock,
                   return_value=""):
            assert summarize_log("some log") is None
