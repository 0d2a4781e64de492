"""Resolve a loosely typed workflow identifier to exactly one catalog entry.

Operators type workflow names the way they remember them: wrong casing,
scrambled words, partial names, names from before a rename. Resolution runs
through ordered tiers and stops at the first tier that produces any candidate:

  exact             raw name, path or id equal to the query
  normalized-exact  normalized name or path equal to the normalized query
  token-overlap     every query token covered by a name token, substring
                    containment, or a path slug match
  alias-table       legacy display names mapped to current names/paths
  keyword-category  two or more domain keywords, all present in the candidate

The loose tiers are filtered by an exclusion guard: a query that says
"regression" never accepts a workflow that only says "smoke". More than one
survivor is reported as ambiguous instead of picking one.
"""

import difflib
import logging
import re

import yaml

from wfctl.errors import AmbiguousWorkflow, WorkflowNotFound

logger = logging.getLogger(__name__)

TIER_EXACT = "exact"
TIER_NORMALIZED = "normalized-exact"
TIER_TOKENS = "token-overlap"
TIER_ALIAS = "alias-table"
TIER_KEYWORDS = "keyword-category"

# Keywords within a group name operationally distinct suites or targets.
DEFAULT_EXCLUSIVE_GROUPS = (
    frozenset({"regression", "smoke"}),
    frozenset({"ios", "android"}),
)

# Display names that operators (and chat history) still use, mapped to the
# names or definition files they refer to today.
LEGACY_ALIASES = {
    "iOS Maestro Cloud Tests": ["iOS Maestro Cloud Tests"],
    "Run BS iOS Maestro Test (Minimal Zip)": ["Run BS iOS Maestro Test (Minimal Zip)"],
    "iOS Gauge Tests on LambdaTest": ["iOS Gauge Tests on LambdaTest"],
    "Maestro Mobile Tests - iOS and Android": ["Maestro Mobile Tests - iOS and Android"],
    "Run Maestro Test on BrowserStack (iOS)": ["Run Maestro Test on BrowserStack (iOS)"],
    "Run Maestro Test on BrowserStack": ["Run Maestro Test on BrowserStack"],
    "Maestro iOS Tests": ["Maestro iOS Tests"],
    "QA US - CORE UX REGRESSION": ["QA US - CORE UX REGRESSION", "qa_us_coreux_regression.yml"],
    "QA US - CORE UX SMOKE E2E": ["QA US - CORE UX SMOKE E2E", "qa_coreux_smoke_e2e.yml"],
    "QA US - E2E": ["QA US - E2E", "qa-e2e-web.yml"],
    "QA CA - E2E": ["QA CA - E2E", "qa-ca-e2e-web.yml"],
    "QA E2E Web Regression": ["QA E2E Web Regression", "qa_e2e_web_regression.yml"],
    "QA Android Regression": ["QA Android Regression", "qa_android_regression.yml"],
    "QA iOS Regression": ["QA iOS Regression", "qa_ios_regression.yml"],
    "QA API Kitchen Regression": ["QA API Kitchen Regression", "qa_api_kitchen_regression.yml"],
    "QA Logistics Regression": ["QA Logistics Regression", "qa_logistics_regression.yml"],
    "Prod Android Regression": ["Prod Android Regression", "prod_android_regression.yml"],
    "Prod iOS Regression": ["Prod iOS Regression", "prod_ios_regression.yml"],
}

# Environment, region, platform, suite-type, device-cloud and product-area codes.
KEYWORD_VOCABULARY = frozenset({
    "qa", "prod", "production", "staging", "dev",
    "us", "ca",
    "ios", "android", "web", "api", "mobile",
    "regression", "smoke", "e2e", "sanity", "integration",
    "maestro", "gauge", "browserstack", "lambdatest", "playwright", "cloud",
    "core", "ux", "coreux", "kitchen", "logistics", "landings", "signup",
})

MIN_KEYWORD_MATCHES = 2


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def normalize(text) -> str:
    """Lowercase, trim, and collapse internal whitespace runs to one space."""
    return re.sub(r"\s+", " ", str(text)).strip().lower()


def _words(text: str) -> list[str]:
    """Whitespace tokens of the normalized text, longer than one char."""
    return [w for w in normalize(text).split(" ") if len(w) > 1]


def _keyword_tokens(text: str) -> list[str]:
    """Alphanumeric tokens, so paths like qa_ios_regression.yml split too."""
    return [t for t in re.split(r"[^a-z0-9]+", str(text).lower()) if t]


def _has_keyword(keyword: str, tokens: list[str]) -> bool:
    # Short codes (qa, us, ios) must be whole tokens.
    if len(keyword) > 3:
        return any(keyword in token for token in tokens)
    return keyword in tokens


def category_conflict(query: str, name: str, groups=DEFAULT_EXCLUSIVE_GROUPS) -> bool:
    """Return True if query and name disagree on an exclusive keyword group.

    Both sides must carry at least one keyword of the group and share none:
    "regression" vs "smoke" conflicts, "regression" vs "regression smoke"
    does not.
    """
    q_tokens = _keyword_tokens(query)
    n_tokens = _keyword_tokens(name)
    for group in groups:
        q_hits = {kw for kw in group if _has_keyword(kw, q_tokens)}
        n_hits = {kw for kw in group if _has_keyword(kw, n_tokens)}
        if q_hits and n_hits and q_hits.isdisjoint(n_hits):
            return True
    return False


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------

def _exact_matches(query: str, catalog: list[dict]) -> list[dict]:
    return [
        wf for wf in catalog
        if query in (wf.get("name"), wf.get("path"), str(wf.get("id")))
    ]


def _file_name(path) -> str:
    return (path or "").rsplit("/", 1)[-1]


def _normalized_matches(query: str, catalog: list[dict]) -> list[dict]:
    nq = normalize(query)
    return [
        wf for wf in catalog
        if normalize(wf.get("name", "")) == nq
        or normalize(wf.get("path", "")) == nq
        or normalize(_file_name(wf.get("path"))) == nq
    ]


def _token_match(nq: str, wf: dict) -> bool:
    name = normalize(wf.get("name", ""))
    path = (wf.get("path") or "").lower()
    q_words = _words(nq)
    n_words = _words(name)

    if q_words and n_words and all(
        any(w in nw or nw in w for nw in n_words) for w in q_words
    ):
        return True

    if name and (name in nq or nq in name):
        return True

    if path and q_words:
        if "_".join(q_words) in path or "-".join(q_words) in path:
            return True
    return False


def _token_matches(query: str, catalog: list[dict]) -> list[dict]:
    nq = normalize(query)
    return [wf for wf in catalog if _token_match(nq, wf)]


def _query_keywords(query: str) -> list[str]:
    tokens = set(_keyword_tokens(query))
    return sorted(tokens & KEYWORD_VOCABULARY)


def _keyword_matches(query: str, catalog: list[dict]) -> list[dict]:
    keywords = _query_keywords(query)
    if len(keywords) < MIN_KEYWORD_MATCHES:
        return []
    logger.debug("Keyword tier for %r: %s", query, keywords)
    matches = []
    for wf in catalog:
        tokens = _keyword_tokens(wf.get("name", "")) + _keyword_tokens(wf.get("path", ""))
        if all(_has_keyword(kw, tokens) for kw in keywords):
            matches.append(wf)
    return matches


def _guarded(
    query: str, candidates: list[dict], groups, rejected: list[str],
) -> list[dict]:
    """Drop candidates vetoed by the exclusion guard, recording their names."""
    kept = []
    for wf in candidates:
        if category_conflict(query, wf.get("name", ""), groups):
            logger.info("Rejected %r for %r: exclusive keyword mismatch",
                        wf.get("name"), query)
            if wf.get("name") not in rejected:
                rejected.append(wf.get("name"))
            continue
        kept.append(wf)
    return kept


def _alias_target_matches(target: str, catalog: list[dict]) -> list[dict]:
    nt = normalize(target)
    lt = target.lower()
    strict = [
        wf for wf in catalog
        if normalize(wf.get("name", "")) == nt
        or (wf.get("path") or "").lower() == lt
        or _file_name(wf.get("path")).lower() == lt
    ]
    if strict:
        return strict

    stem = re.sub(r"\.ya?ml$", "", lt)
    loose = []
    for wf in catalog:
        name = normalize(wf.get("name", ""))
        path = (wf.get("path") or "").lower()
        if (stem and stem in path) or (name and (name in nt or nt in name)):
            loose.append(wf)
    return loose


def _alias_matches(
    query: str, catalog: list[dict], aliases: dict, groups, rejected: list[str],
) -> list[dict]:
    nq = normalize(query)
    targets = next(
        (t for legacy, t in aliases.items() if normalize(legacy) == nq), None,
    )
    if not targets:
        return []
    if isinstance(targets, str):
        targets = [targets]

    for target in targets:
        found = _guarded(query, _alias_target_matches(target, catalog),
                         groups, rejected)
        if found:
            logger.debug("Alias %r -> %r matched %d workflow(s)",
                         query, target, len(found))
            return found
    return []


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def suggest(query: str, names: list[str], limit: int = 5) -> list[str]:
    """Return catalog names that look like the query, best first."""
    by_norm = {}
    for name in names:
        by_norm.setdefault(normalize(name), name)
    close = difflib.get_close_matches(
        normalize(query), list(by_norm), n=limit, cutoff=0.5,
    )
    return [by_norm[c] for c in close]


def resolve(
    query,
    catalog: list[dict],
    aliases: dict | None = None,
    exclusive_groups=None,
) -> dict:
    """Resolve a query to one workflow record.

    Returns a dict with keys: workflow, tier, disabled, rejected.
    Raises WorkflowNotFound when no tier produces a candidate, and
    AmbiguousWorkflow when the winning tier produces several, or when the
    single survivor fails the final exclusion check.
    """
    groups = DEFAULT_EXCLUSIVE_GROUPS if exclusive_groups is None else exclusive_groups
    table = LEGACY_ALIASES if aliases is None else aliases
    names = [wf.get("name", "") for wf in catalog]

    if not isinstance(query, str) or not normalize(query):
        raise WorkflowNotFound(
            "No workflow name given. Available workflows: " + ", ".join(names),
            query="" if query is None else str(query),
            available=names,
        )

    rejected: list[str] = []
    tiers = (
        (TIER_EXACT, lambda: _exact_matches(query, catalog)),
        (TIER_NORMALIZED, lambda: _normalized_matches(query, catalog)),
        (TIER_TOKENS, lambda: _guarded(
            query, _token_matches(query, catalog), groups, rejected)),
        (TIER_ALIAS, lambda: _alias_matches(
            query, catalog, table, groups, rejected)),
        (TIER_KEYWORDS, lambda: _guarded(
            query, _keyword_matches(query, catalog), groups, rejected)),
    )

    tier = ""
    survivors: list[dict] = []
    for tier, find in tiers:
        survivors = find()
        logger.debug("Tier %s: %d candidate(s) for %r", tier, len(survivors), query)
        if survivors:
            break

    if not survivors:
        candidates = rejected + [
            n for n in suggest(query, names) if n not in rejected
        ]
        hint = f" Did you mean: {', '.join(candidates)}?" if candidates else ""
        raise WorkflowNotFound(
            f"Workflow '{query}' not found.{hint} "
            f"Available workflows: {', '.join(names)}",
            query=query, candidates=candidates, available=names,
        )

    if len(survivors) > 1:
        matched = [wf.get("name", "") for wf in survivors]
        raise AmbiguousWorkflow(
            f"Workflow '{query}' matches {len(survivors)} workflows "
            f"({tier}): {', '.join(matched)}. Use the exact name or file path. "
            f"Available workflows: {', '.join(names)}",
            query=query, candidates=matched, available=names,
        )

    workflow = survivors[0]
    if category_conflict(query, workflow.get("name", ""), groups):
        raise AmbiguousWorkflow(
            f"Workflow '{query}' matched '{workflow.get('name')}' but they name "
            f"different suite types. Available workflows: {', '.join(names)}",
            query=query,
            candidates=[workflow.get("name", "")] + rejected,
            available=names,
        )

    disabled = workflow.get("state") == "disabled"
    logger.info("Resolved %r to %r (tier=%s, id=%s)",
                query, workflow.get("name"), tier, workflow.get("id"))
    if tier not in (TIER_EXACT, TIER_NORMALIZED):
        nq, nn = normalize(query), normalize(workflow.get("name", ""))
        if nq not in nn and nn not in nq:
            logger.warning("Resolved %r to %r by %s; names differ, verify the match",
                           query, workflow.get("name"), tier)
    if disabled:
        logger.warning("Workflow %r is disabled", workflow.get("name"))

    return {
        "workflow": workflow,
        "tier": tier,
        "disabled": disabled,
        "rejected": rejected,
    }


def load_aliases(path: str | None) -> dict:
    """Load an alias file and merge it over the built-in table.

    The file is YAML: a mapping of legacy display name to one target or a
    list of targets (names or workflow file names).
    """
    aliases = dict(LEGACY_ALIASES)
    if not path:
        return aliases
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Alias file must be a mapping: {path}")
    for legacy, targets in data.items():
        if isinstance(targets, str):
            targets = [targets]
        if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
            raise ValueError(f"Invalid alias targets for '{legacy}' in {path}")
        aliases[str(legacy)] = targets
    logger.debug("Loaded %d alias(es) from %s", len(data), path)
    return aliases
