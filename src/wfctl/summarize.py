"""Find or produce the AI error summary of a failed run.

Test pipelines upload an `openai_summary.txt` report and print its URL in the
job log; some print the summary inline under an "AI Errors Summary" heading.
When neither is present, a Claude agent can summarize the log tail instead.
"""

import asyncio
import logging
import re

import requests
from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    ResultMessage,
    TextBlock,
)

from wfctl.prompts.summarizer import SUMMARIZER_PROMPT

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 10_000
SUMMARY_FETCH_TIMEOUT = 5
LOG_TAIL_CHARS = 12_000

SUMMARY_URL_RE = re.compile(
    r"https://[^/\s]+\.s3\.[^/\s]+/reports/[^/\s]+/openai_summary\.txt[^\s]*",
    re.IGNORECASE,
)

# Tried in order when the log links no summary file.
INLINE_SUMMARY_PATTERNS = [
    re.compile(
        r"(?:##\s*)?(?:AI\s+)?(?:Error|Failure)s?\s+Summary[\s\S]*?(?=\n\n##|\n---|\Z)",
        re.IGNORECASE,
    ),
    re.compile(r"AI\s+Errors?\s+Summary[\s\S]{0,2000}", re.IGNORECASE),
]

# GitHub prefixes every log line with an ISO timestamp.
_LOG_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z ?", re.MULTILINE)


def strip_log_timestamps(text: str) -> str:
    return _LOG_TIMESTAMP_RE.sub("", text)


def fetch_summary_file(url: str) -> str | None:
    """Download a linked summary file. Returns None on any failure."""
    try:
        resp = requests.get(
            url,
            headers={"Accept": "text/plain, text/*, */*"},
            timeout=SUMMARY_FETCH_TIMEOUT,
        )
    except requests.Timeout:
        logger.warning("Timed out fetching AI summary from %s", url[:100])
        return None
    except requests.RequestException as e:
        logger.warning("Could not fetch AI summary from %s: %s", url[:100], e)
        return None
    if not resp.ok:
        logger.warning("Fetching AI summary returned %d", resp.status_code)
        return None
    return resp.text.strip() or None


def extract_ai_summary(log_text: str) -> str | None:
    """Return the AI error summary for a job log, or None.

    The last linked summary file wins over inline text. The result is
    capped at SUMMARY_MAX_CHARS.
    """
    if not log_text:
        return None
    text = strip_log_timestamps(log_text)

    summary = None
    urls = SUMMARY_URL_RE.findall(text)
    if urls:
        summary = fetch_summary_file(urls[-1].strip())

    if not summary:
        for pattern in INLINE_SUMMARY_PATTERNS:
            m = pattern.search(text)
            if m:
                summary = m.group(0).strip()
                logger.debug("Found inline AI summary (%d chars)", len(summary))
                break

    if not summary:
        return None
    return summary[:SUMMARY_MAX_CHARS]


# ---------------------------------------------------------------------------
# Agent fallback
# ---------------------------------------------------------------------------

async def _run_summarizer(task: str, model: str) -> str:
    options = ClaudeAgentOptions(
        model=model,
        system_prompt=SUMMARIZER_PROMPT,
        allowed_tools=[],
        max_turns=1,
    )
    parts = []
    async with ClaudeSDKClient(options=options) as client:
        await client.query(task)
        async for message in client.receive_messages():
            if isinstance(message, ResultMessage):
                logger.debug("[summarize] Done in %d turns", message.num_turns)
                break
            elif isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock) and block.text.strip():
                        parts.append(block.text.strip())
    return "\n".join(parts)


def summarize_log(
    log_text: str, job_name: str = "", model: str = "sonnet",
) -> str | None:
    """Ask a Claude agent to summarize the tail of a failed job log."""
    tail = strip_log_timestamps(log_text or "")[-LOG_TAIL_CHARS:]
    if not tail.strip():
        return None
    task = (
        f"Failed job: {job_name or 'unknown'}\n\n"
        f"Log tail:\n```\n{tail}\n```\n"
    )
    summary = asyncio.run(_run_summarizer(task, model))
    return summary[:SUMMARY_MAX_CHARS] or None
