"""Tests for wfctl.mine -- summary classification and distinct-run clustering."""

import pytest

from wfctl.metrics import Metrics
from wfctl.mine import (
    EXAMPLE_MAX_CHARS,
    MAX_EXAMPLES,
    classify_summary,
    excerpt,
    mine,
)


def _record(summary, run_id, workflow="QA US - CORE UX REGRESSION"):
    return {"summary": summary, "run_id": run_id, "workflow_name": workflow}


# ---------------------------------------------------------------------------
# classify_summary -- known patterns
# ---------------------------------------------------------------------------

class TestKnownPatterns:
    @pytest.mark.parametrize("text, name", [
        ("**Timeout**: waiting for locator X", "Timeout waiting for locator"),
        ("locator.click: Timeout 30000ms exceeded.\nCall log:\n"
         "  - waiting for locator('#pay')", "Timeout waiting for locator"),
        ("page.goto: Timeout 30000ms exceeded navigating to /cart", "Page load timeout"),
        ("StaleElementReferenceException: stale element reference", "Stale element reference"),
        ("Element not found: button Y", "Element not found"),
        ("NoSuchElementError: no such element: #submit", "Element not found"),
        ("expect(locator).toBeVisible() failed", "Element not visible"),
        ("Error: Invalid selector '//div[@'", "Invalid locator/selector"),
        ("Failed to click the checkout button", "Action failed (click/fill)"),
        ("page.goto: net::ERR_CONNECTION_REFUSED", "Network error"),
        ("Login failed for user qa-bot: 401", "Authentication failure"),
        ("AssertionError: expected 'Paid' but got 'Pending'", "Assertion failure"),
        ("TypeError: Cannot read properties of undefined", "Script error"),
        ("Test timeout of 60000ms exceeded.", "Test timeout exceeded"),
    ])
    def test_names(self, text, name):
        rule, found, _ = classify_summary(text)
        assert rule == "known-pattern"
        assert found == name

    def test_first_pattern_wins(self):
        text = "Element not found after Timeout waiting for selector '#a'"
        assert classify_summary(text)[1] == "Timeout waiting for locator"

    def test_offset_is_line_start(self):
        text = "AI Errors Summary\n\nElement not found: button Y"
        _, _, offset = classify_summary(text)
        assert text[offset:].startswith("Element not found")


# ---------------------------------------------------------------------------
# classify_summary -- extraction rules
# ---------------------------------------------------------------------------

class TestExtractionRules:
    def test_heading(self):
        text = "## Checkout total mismatch\nThe cart showed 3 items."
        assert classify_summary(text)[:2] == ("heading", "Checkout total mismatch")

    def test_bold_label(self):
        text = "**Payment sheet never opened**: the modal stayed hidden."
        assert classify_summary(text)[:2] == ("heading", "Payment sheet never opened")

    def test_boilerplate_heading_skipped(self):
        text = "## AI Errors Summary\n## Coupon code rejected\nDetails follow."
        assert classify_summary(text)[1] == "Coupon code rejected"

    def test_heading_too_short_skipped(self):
        text = "## QA\nCart error: item count wrong"
        assert classify_summary(text)[:2] == ("keyword-line", "Cart error")

    def test_keyword_line(self):
        text = "Run overview\n- Cart sync issue: totals differ between tabs"
        assert classify_summary(text)[:2] == ("keyword-line", "Cart sync issue")

    def test_keyword_line_label_too_long(self):
        label = "A very long description of a problem that keeps going on and on"
        text = f"{label}: details"
        rule, name, _ = classify_summary(text)
        assert rule == "keyword-sentence"
        assert len(name) <= 80

    def test_numbered_heading(self):
        text = "1. **Coupon banner**\n   Shown twice."
        assert classify_summary(text)[:2] == ("numbered-heading", "Coupon banner")

    def test_keyword_sentence(self):
        text = "All good until checkout.\nThe order failed to submit. Retried twice."
        assert classify_summary(text)[:2] == (
            "keyword-sentence", "The order failed to submit")

    @pytest.mark.parametrize("text", ["", "   ", None, "All tests passed.", 42])
    def test_discarded(self, text):
        assert classify_summary(text) is None


# ---------------------------------------------------------------------------
# excerpt
# ---------------------------------------------------------------------------

class TestExcerpt:
    def test_collapses_whitespace(self):
        assert excerpt("a\n\n  b\tc") == "a b c"

    def test_truncates_with_ellipsis(self):
        result = excerpt("x" * 500)
        assert result == "x" * EXAMPLE_MAX_CHARS + "..."

    def test_from_offset(self):
        assert excerpt("header\nbody", 7) == "body"


# ---------------------------------------------------------------------------
# mine
# ---------------------------------------------------------------------------

class TestMine:
    def test_counts_distinct_runs(self):
        records = [
            _record("**Timeout**: waiting for locator X", 1),
            _record("Element not found: button Y", 1),
            _record("**Timeout**: waiting for locator Z", 2),
        ]
        patterns = mine(records)
        assert [(p["name"], p["run_count"]) for p in patterns] == [
            ("Timeout waiting for locator", 2),
            ("Element not found", 1),
        ]

    def test_repeat_summaries_in_one_run_count_once(self):
        records = [_record("Element not found: #a", 7)] * 3
        pattern = mine(records)[0]
        assert pattern["run_count"] == 1
        assert pattern["mentions"] == 3
        assert pattern["run_ids"] == ["7"]

    def test_run_count_never_exceeds_mentions(self):
        records = [
            _record("Element not found: #a", 1),
            _record("Element not found: #b", 2),
            _record("Element not found: #c", 2),
            _record("## Cart badge stale\nshows 0", 3),
        ]
        for pattern in mine(records):
            assert pattern["run_count"] <= pattern["mentions"]

    def test_idempotent(self):
        records = [
            _record("**Timeout**: waiting for locator X", 1),
            _record("## Coupon rejected", 2, workflow="QA CA - E2E"),
            _record("nothing to see", 3),
        ]
        assert mine(records) == mine(records)

    def test_case_insensitive_keys_keep_first_name(self):
        records = [
            _record("## Coupon Rejected", 1),
            _record("## coupon rejected", 2),
        ]
        patterns = mine(records)
        assert len(patterns) == 1
        assert patterns[0]["name"] == "Coupon Rejected"
        assert patterns[0]["run_count"] == 2

    def test_ties_sorted_by_name(self):
        records = [
            _record("## Zebra crossing failed", 1),
            _record("## Apple pay failed", 2),
        ]
        assert [p["name"] for p in mine(records)] == [
            "Apple pay failed", "Zebra crossing failed",
        ]

    def test_workflows_attributed(self):
        records = [
            _record("Element not found: #a", 1, workflow="QA US - E2E"),
            _record("Element not found: #b", 2, workflow="QA CA - E2E"),
        ]
        assert mine(records)[0]["workflows"] == ["QA CA - E2E", "QA US - E2E"]

    def test_examples_capped_and_truncated(self):
        records = [
            _record("Element not found: " + "x" * 300 + str(i), i, workflow=f"wf{i}")
            for i in range(MAX_EXAMPLES + 3)
        ]
        examples = mine(records)[0]["examples"]
        assert len(examples) == MAX_EXAMPLES
        assert all(len(e["excerpt"]) == EXAMPLE_MAX_CHARS + 3 for e in examples)
        assert examples[0] == {
            "workflow": "wf0", "run_id": "0", "excerpt": examples[0]["excerpt"],
        }

    def test_duplicate_examples_per_workflow_skipped(self):
        records = [
            _record("Element not found: #a", 1),
            _record("Element not found: #a", 2),
        ]
        assert len(mine(records)[0]["examples"]) == 1

    def test_unclassifiable_and_missing_run_ids_discarded(self):
        metrics = Metrics()
        records = [
            _record("nothing to see", 1),
            _record("Element not found: #a", None),
            _record("Element not found: #a", 2),
        ]
        patterns = mine(records, metrics=metrics)
        assert len(patterns) == 1
        assert metrics.get("summaries_discarded") == 2
        assert metrics.get("summaries_clustered") == 1

    def test_empty(self):
        assert mine([]) == []
