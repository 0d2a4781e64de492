"""Cluster free-text failure summaries into named failure patterns.

Each failed run may carry an LLM-written summary of what went wrong. The
summaries have no fixed structure, so each one is classified by an ordered
list of rules, first hit wins:

  known-pattern     regex library of common UI-automation failure shapes
  heading           markdown heading or **bold label**: (boilerplate skipped)
  keyword-line      "Something error: ..." style label lines
  numbered-heading  "1. **Label**" list items
  keyword-sentence  first sentence of the first line with an error keyword

Summaries no rule can name are discarded rather than lumped into an "other"
bucket. Patterns are ranked by the number of distinct runs, never by the
number of summaries or mentions.
"""

import logging
import re

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 5
EXAMPLE_MAX_CHARS = 200
HEADING_MIN_CHARS = 3
HEADING_MAX_CHARS = 80
LABEL_MAX_CHARS = 60
SENTENCE_MAX_CHARS = 80

_FLAGS = re.IGNORECASE

# Ordered: the first matching expression names the cluster.
KNOWN_PATTERNS = [
    (re.compile(
        r"time(?:d)?[\s_-]*out\b.{0,60}?waiting\s+for\s+(?:locator|element|selector)"
        r"|waiting\s+for\s+(?:locator|selector|element)\b.{0,120}?time(?:d)?[\s_-]*out",
        _FLAGS | re.DOTALL),
     "Timeout waiting for locator"),
    (re.compile(
        r"(?:page|navigation)\s+(?:load\s+)?time(?:d)?[\s_-]*out"
        r"|time(?:d)?[\s_-]*out.{0,40}?(?:page\s+load|navigat|page\.goto|load\s+event)"
        r"|page\.goto.{0,60}?timeout",
        _FLAGS),
     "Page load timeout"),
    (re.compile(
        r"stale\s+element"
        r"|element\s+is\s+(?:not\s+attached|detached)\s+(?:to|from)\s+the\s+(?:dom|page)",
        _FLAGS),
     "Stale element reference"),
    (re.compile(
        r"element\s+(?:was\s+)?not\s+found|no\s+such\s+element"
        r"|(?:unable\s+to|failed\s+to|could\s+not|cannot)\s+(?:find|locate)\s+(?:the\s+)?element"
        r"|resolved\s+to\s+0\s+elements",
        _FLAGS),
     "Element not found"),
    (re.compile(
        r"not\s+visible|element\s+is\s+(?:hidden|not\s+displayed)|to\s*be\s*visible",
        _FLAGS),
     "Element not visible"),
    (re.compile(
        r"invalid\s+(?:selector|locator|xpath)"
        r"|(?:selector|locator|xpath)\s+(?:is\s+)?(?:invalid|malformed)"
        r"|unexpected\s+token.{0,40}?selector"
        r"|is\s+not\s+a\s+valid\s+(?:selector|xpath)",
        _FLAGS),
     "Invalid locator/selector"),
    (re.compile(
        r"(?:click|fill|type|press|hover|check|selectoption)\s+(?:action\s+)?(?:failed|error)"
        r"|failed\s+to\s+(?:click|fill|type|press|hover)"
        r"|(?:locator|page)\.(?:click|fill|type|press|hover)\s*:",
        _FLAGS),
     "Action failed (click/fill)"),
    (re.compile(
        r"net::err_[a-z_]+|network\s+(?:error|failure|request\s+failed)"
        r"|econnrefused|econnreset|etimedout|enotfound|socket\s+hang\s+up|getaddrinfo"
        r"|fetch\s+failed|(?:status(?:\s+code)?|http)\s*:?\s*50[0234]\b"
        r"|bad\s+gateway|service\s+unavailable",
        _FLAGS),
     "Network error"),
    (re.compile(
        r"authenticat\w*\s+(?:failed|failure|error)|unauthori[sz]ed"
        r"|login\s+(?:failed|failure|error)|invalid\s+credentials"
        r"|(?:status(?:\s+code)?|http)\s*:?\s*40[13]\b|\bforbidden\b",
        _FLAGS),
     "Authentication failure"),
    (re.compile(
        r"assertion\s*error|assertion\s+failed"
        r"|expect\s*\(.{0,120}?\)\s*\.\s*(?:not\s*\.\s*)?to"
        r"|expected\s*:?.{0,120}?\breceived\b"
        r"|expected\s+.{1,80}?\bbut\s+(?:got|was|received)",
        _FLAGS),
     "Assertion failure"),
    (re.compile(
        r"\b(?:typeerror|referenceerror|syntaxerror|rangeerror)\b"
        r"|javascript\s+error|script\s+error|uncaught\s+(?:exception|error)"
        r"|evaluation\s+failed",
        _FLAGS),
     "Script error"),
    (re.compile(
        r"test\s+timeout\s+of\s+\d+\s*ms\s+exceeded"
        r"|test\s+(?:timed\s+out|exceeded\s+(?:the\s+)?timeout)",
        _FLAGS),
     "Test timeout exceeded"),
]

BOILERPLATE_PHRASES = (
    "possible cause", "suggest", "based on", "recommend", "next step",
    "summary", "overview", "conclusion", "analysis",
)

ERROR_KEYWORD_RE = re.compile(
    r"time(?:d)?\s*out|error|fail|issue|problem|exception|warning", _FLAGS,
)

_HEADING_RE = re.compile(r"^[ \t]*#{1,6}[ \t]+(?P<label>[^\n]+?)[ \t]*$", re.MULTILINE)
_BOLD_LABEL_RE = re.compile(
    r"\*\*(?P<a>[^*\n]+?)\*\*[ \t]*:|\*\*(?P<b>[^*\n]+?):[ \t]*\*\*")
_NUMBERED_RE = re.compile(r"^[ \t]*\d+\.[ \t]+\*\*(?P<label>[^*\n]+?)\*\*", re.MULTILINE)
_LABEL_LINE_RE = re.compile(
    r"^[ \t]*(?:[-*+][ \t]+|\d+[.)][ \t]+)?(?P<label>[^:\n]{2,80}?)[ \t]*:[ \t]+\S",
    re.MULTILINE,
)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def _clean_label(text: str) -> str:
    """Strip markdown decoration, list markers and a trailing colon."""
    text = re.sub(r"[*`]+", "", text)
    text = re.sub(r"^\s*(?:[-+#>]+|\d+[.)])\s*", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text.rstrip(":").strip()


def _line_start(text: str, pos: int) -> int:
    return text.rfind("\n", 0, pos) + 1


def _is_boilerplate(label: str) -> bool:
    lower = label.lower()
    return any(phrase in lower for phrase in BOILERPLATE_PHRASES)


def _heading_ok(label: str) -> bool:
    return (HEADING_MIN_CHARS <= len(label) <= HEADING_MAX_CHARS
            and not _is_boilerplate(label))


def excerpt(text: str, offset: int = 0, limit: int = EXAMPLE_MAX_CHARS) -> str:
    """Collapse whitespace from offset on and truncate with an ellipsis."""
    snippet = re.sub(r"\s+", " ", text[offset:]).strip()
    if len(snippet) > limit:
        return snippet[:limit].rstrip() + "..."
    return snippet


# ---------------------------------------------------------------------------
# Rules: each returns (name, offset) or None
# ---------------------------------------------------------------------------

def _match_known_pattern(text: str):
    for pattern, name in KNOWN_PATTERNS:
        m = pattern.search(text)
        if m:
            return name, _line_start(text, m.start())
    return None


def _extract_heading(text: str):
    found = []
    for m in _HEADING_RE.finditer(text):
        found.append((m.start(), m.group("label")))
    for m in _BOLD_LABEL_RE.finditer(text):
        found.append((m.start(), m.group("a") or m.group("b")))
    for pos, raw in sorted(found):
        label = _clean_label(raw)
        if _heading_ok(label):
            return label, _line_start(text, pos)
    return None


def _extract_keyword_label(text: str):
    for m in _LABEL_LINE_RE.finditer(text):
        label = _clean_label(m.group("label"))
        if (label and len(label) <= LABEL_MAX_CHARS
                and ERROR_KEYWORD_RE.search(label)
                and not label.lower().startswith(("http", "www"))):
            return label, m.start()
    return None


def _extract_numbered_heading(text: str):
    for m in _NUMBERED_RE.finditer(text):
        label = _clean_label(m.group("label"))
        if _heading_ok(label):
            return label, m.start()
    return None


def _extract_keyword_sentence(text: str):
    offset = 0
    for line in text.splitlines(keepends=True):
        if ERROR_KEYWORD_RE.search(line):
            cleaned = _clean_label(line)
            sentence = re.split(r"(?<=[.!?])\s", cleaned, maxsplit=1)[0]
            sentence = sentence.rstrip(".!? ").strip()
            if len(sentence) > SENTENCE_MAX_CHARS:
                sentence = sentence[:SENTENCE_MAX_CHARS].rsplit(" ", 1)[0]
            if sentence:
                return sentence, offset
        offset += len(line)
    return None


RULES = [
    ("known-pattern", _match_known_pattern),
    ("heading", _extract_heading),
    ("keyword-line", _extract_keyword_label),
    ("numbered-heading", _extract_numbered_heading),
    ("keyword-sentence", _extract_keyword_sentence),
]


def classify_summary(text) -> tuple[str, str, int] | None:
    """Name the failure pattern a summary describes.

    Returns (rule, name, offset), where offset is where the matched text
    starts, or None when no rule applies.
    """
    if not isinstance(text, str) or not text.strip():
        return None
    for rule, extract in RULES:
        hit = extract(text)
        if hit:
            name, offset = hit
            return rule, name, offset
    return None


# ---------------------------------------------------------------------------
# Clustering
# ---------------------------------------------------------------------------

def _run_sort_key(run_id: str):
    return (0, int(run_id), "") if run_id.isdigit() else (1, 0, run_id)


def _add_example(cluster: dict, workflow: str, run_id: str, text: str) -> None:
    if len(cluster["examples"]) >= MAX_EXAMPLES:
        return
    for example in cluster["examples"]:
        if example["workflow"] == workflow and example["excerpt"] == text:
            return
    cluster["examples"].append(
        {"workflow": workflow, "run_id": run_id, "excerpt": text})


def mine(records: list[dict], metrics=None) -> list[dict]:
    """Cluster failure summaries into patterns ranked by distinct runs.

    Each record has keys: summary, run_id, workflow_name. Returns dicts with
    keys: name, rule, run_ids, run_count, mentions, examples, workflows.
    """
    clusters: dict[str, dict] = {}
    discarded = 0

    for record in records:
        run_id = record.get("run_id")
        if run_id is None or str(run_id) == "":
            discarded += 1
            continue
        hit = classify_summary(record.get("summary"))
        if hit is None:
            logger.debug("No pattern for run %s, discarding summary", run_id)
            discarded += 1
            continue

        rule, name, offset = hit
        run_id = str(run_id)
        workflow = record.get("workflow_name") or ""

        cluster = clusters.get(name.lower())
        if cluster is None:
            cluster = clusters[name.lower()] = {
                "name": name,
                "rule": rule,
                "run_ids": set(),
                "mentions": 0,
                "examples": [],
                "workflows": set(),
            }
        cluster["mentions"] += 1
        cluster["run_ids"].add(run_id)
        if workflow:
            cluster["workflows"].add(workflow)
        _add_example(cluster, workflow, run_id, excerpt(record["summary"], offset))

    patterns = []
    for cluster in clusters.values():
        patterns.append({
            "name": cluster["name"],
            "rule": cluster["rule"],
            "run_ids": sorted(cluster["run_ids"], key=_run_sort_key),
            "run_count": len(cluster["run_ids"]),
            "mentions": cluster["mentions"],
            "examples": cluster["examples"],
            "workflows": sorted(cluster["workflows"]),
        })
    patterns.sort(key=lambda p: (-p["run_count"], p["name"].lower()))

    logger.info("Clustered %d summaries into %d patterns (%d discarded)",
                len(records) - discarded, len(patterns), discarded)
    if metrics is not None:
        metrics.incr("summaries_clustered", len(records) - discarded)
        metrics.incr("summaries_discarded", discarded)
        metrics.incr("patterns", len(patterns))
    return patterns
