"""Trigger a workflow from a loosely typed name and locate the run it created.

One DispatchCoordinator handles one request and walks it through:

  idle -> resolving -> validating -> dispatching -> awaiting-run-id -> done
                                                                    \\-> failed

The dispatch API does not return a run id, so after a settle delay the recent
runs of the workflow are polled a bounded number of times. A run that never
shows up is reported as run-id-unavailable: the dispatch itself was accepted
and the operator should check the Actions tab rather than retry.
"""

import logging
import time
from datetime import UTC, datetime, timedelta

import requests

from wfctl import github
from wfctl.errors import (
    DispatchRejected,
    ResolutionError,
    RunIdUnavailable,
    UnsupportedTrigger,
    WfctlError,
)
from wfctl.inputs import (
    declared_input_names,
    filter_inputs,
    missing_required_inputs,
    parse_workflow_definition,
)
from wfctl.resolve import resolve

logger = logging.getLogger(__name__)

IDLE = "idle"
RESOLVING = "resolving"
VALIDATING = "validating"
DISPATCHING = "dispatching"
AWAITING_RUN_ID = "awaiting-run-id"
DONE = "done"
FAILED = "failed"

DEFAULT_BRANCH = "main"

# Environments are chosen through workflow inputs. A "branch" equal to one of
# these is a misplaced environment name.
ENVIRONMENT_LABELS = frozenset({
    "prod", "production", "qa", "staging", "dev", "development",
    "test", "testing",
})

SETTLE_SECONDS = 3.0
POLL_INTERVAL_SECONDS = 2.0
MAX_POLLS = 5
RUN_LIST_LIMIT = 5
CLOCK_SKEW = timedelta(seconds=30)


def choose_branch(branch: str | None, default: str = DEFAULT_BRANCH) -> str:
    """Return the ref to dispatch on.

    Empty branches and environment labels fall back to the default.
    """
    if not branch or not branch.strip():
        return default
    if branch.strip().lower() in ENVIRONMENT_LABELS:
        logger.info("Ignoring branch %r: looks like an environment name, using %s",
                    branch, default)
        return default
    return branch.strip()


def _lacks_dispatch_trigger(message: str) -> bool:
    # "Workflow does not have 'workflow_dispatch' trigger"
    text = (message or "").lower()
    return "workflow_dispatch" in text and "does not have" in text


def _parse_time(value: str) -> datetime | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def newest_new_run(
    runs: list[dict], known_ids: set, dispatched_at: datetime,
) -> dict | None:
    """Pick the newest run that was not listed before the dispatch.

    Runs created well before the dispatch (beyond clock skew) are ignored
    even when the pre-dispatch listing was unavailable.
    """
    fresh = []
    for run in runs:
        if run.get("id") in known_ids:
            continue
        created = _parse_time(run.get("created_at", ""))
        if created is not None and created < dispatched_at - CLOCK_SKEW:
            continue
        fresh.append(run)
    if not fresh:
        return None
    return max(fresh, key=lambda r: (r.get("created_at", ""), r.get("id", 0)))


class DispatchCoordinator:
    """Resolve, validate, trigger and track one workflow dispatch.

    Collaborators are injectable callables; the defaults call GitHub:

      list_workflows()                      -> (records, complete)
      get_definition(path, ref)             -> workflow YAML text
      trigger(workflow_id, ref, inputs)     -> {ok, status, message}
      list_runs(workflow_id, limit)         -> runs, newest first
    """

    def __init__(
        self,
        repo: str,
        *,
        list_workflows=None,
        get_definition=None,
        trigger=None,
        list_runs=None,
        aliases: dict | None = None,
        default_branch: str = DEFAULT_BRANCH,
        settle_seconds: float = SETTLE_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_polls: int = MAX_POLLS,
        sleep=time.sleep,
        now=None,
        metrics=None,
    ):
        self.repo = repo
        self.list_workflows = list_workflows or (
            lambda: github.list_workflows(repo))
        self.get_definition = get_definition or (
            lambda path, ref: github.get_file_content(repo, path, ref))
        self.trigger = trigger or (
            lambda wid, ref, inputs: github.trigger_workflow(repo, wid, ref, inputs))
        self.list_runs = list_runs or (
            lambda wid, limit: github.list_recent_runs(repo, wid, limit))
        self.aliases = aliases
        self.default_branch = default_branch
        self.settle_seconds = settle_seconds
        self.poll_interval = poll_interval
        self.max_polls = max(1, max_polls)
        self.sleep = sleep
        self.now = now or (lambda: datetime.now(UTC))
        self.metrics = metrics

    def _incr(self, name: str, **labels) -> None:
        if self.metrics is not None:
            self.metrics.incr(name, **labels)

    @staticmethod
    def _enter(result: dict, state: str) -> None:
        result["state"] = state
        result["transitions"].append(state)
        logger.debug("Dispatch state -> %s", state)

    # -- steps --------------------------------------------------------------

    def _resolve(self, query: str, result: dict) -> dict:
        catalog, complete = self.list_workflows()
        if not complete:
            result["partial_catalog"] = True
            result["warnings"].append(
                "Workflow list was incomplete; resolution may have missed workflows.")
            logger.warning("Resolving %r against a partial catalog (%d workflows)",
                           query, len(catalog))
        resolution = resolve(query, catalog, aliases=self.aliases)
        self._incr("resolutions", tier=resolution["tier"])
        result["workflow"] = resolution["workflow"]
        result["tier"] = resolution["tier"]
        if resolution["disabled"]:
            result["warnings"].append(
                f"Workflow '{resolution['workflow']['name']}' is disabled.")
        return resolution["workflow"]

    def _read_definition(self, workflow: dict, ref: str) -> dict:
        try:
            text = self.get_definition(workflow["path"], ref)
        except Exception as e:
            logger.warning("Could not read %s at %s: %s; sending no inputs",
                           workflow["path"], ref, e)
            return {"dispatchable": None, "inputs": []}
        return parse_workflow_definition(text)

    def _validate(
        self, workflow: dict, ref: str, requested: dict, result: dict,
    ) -> tuple[dict, set[str]]:
        definition = self._read_definition(workflow, ref)
        if definition["dispatchable"] is False:
            raise UnsupportedTrigger(
                f"Workflow '{workflow['name']}' ({workflow['path']}) has no "
                f"workflow_dispatch trigger on {ref}, so it cannot be run on "
                "demand. Add `workflow_dispatch:` under `on:` in its definition."
            )

        declared = declared_input_names(definition)
        valid = filter_inputs(declared, requested)
        missing = missing_required_inputs(definition["inputs"], valid)
        if missing:
            result["warnings"].append(
                "Required inputs not provided: " + ", ".join(missing))
            logger.warning("Required inputs not provided for %r: %s",
                           workflow["name"], ", ".join(missing))
        return valid, declared

    def _snapshot_runs(self, workflow_id) -> set:
        try:
            return {r.get("id") for r in self.list_runs(workflow_id, RUN_LIST_LIMIT)}
        except Exception as e:
            logger.debug("Could not list runs before dispatch: %s", e)
            return set()

    def _dispatch(
        self, workflow: dict, ref: str, inputs: dict, declared: set[str],
        disabled: bool,
    ) -> None:
        logger.info("Dispatching %r (id=%s) on %s with inputs %s",
                    workflow["name"], workflow["id"], ref, inputs)
        try:
            response = self.trigger(workflow["id"], ref, inputs)
        except requests.RequestException as e:
            raise DispatchRejected(
                f"Dispatch request for '{workflow['name']}' failed: {e}") from e

        if response.get("ok"):
            return

        status = response.get("status", 0)
        reason = response.get("message", "")
        if _lacks_dispatch_trigger(reason):
            raise UnsupportedTrigger(
                f"Workflow '{workflow['name']}' cannot be triggered manually: "
                f"{workflow['path']} on {ref} has no workflow_dispatch trigger."
            )

        message = (
            f"GitHub rejected the dispatch of '{workflow['name']}' on {ref} "
            f"({status}): {reason}"
        )
        if status == 422 and not declared:
            message += (
                f". The definition declares no dispatch inputs, so none were "
                f"sent; check that {workflow['path']} on {ref} has a "
                "workflow_dispatch trigger and that the branch exists."
            )
        if disabled:
            message += " The workflow is disabled; enable it before triggering."
        raise DispatchRejected(message, status=status)

    def _await_run_id(self, workflow: dict, known_ids: set, dispatched_at) -> dict:
        self.sleep(self.settle_seconds)
        for attempt in range(1, self.max_polls + 1):
            try:
                runs = self.list_runs(workflow["id"], RUN_LIST_LIMIT)
            except Exception as e:
                logger.warning("Listing runs failed (attempt %d/%d): %s",
                               attempt, self.max_polls, e)
                runs = []
            run = newest_new_run(runs, known_ids, dispatched_at)
            if run is not None:
                return run
            logger.debug("No new run yet (attempt %d/%d)", attempt, self.max_polls)
            if attempt < self.max_polls:
                self.sleep(self.poll_interval)

        waited = self.settle_seconds + self.poll_interval * (self.max_polls - 1)
        where = workflow.get("html_url") or f"https://github.com/{self.repo}/actions"
        raise RunIdUnavailable(
            f"Workflow '{workflow['name']}' was dispatched, but its new run did "
            f"not appear within {waited:.0f}s. It may still be queued; check "
            f"{where} before triggering again."
        )

    # -- entry point --------------------------------------------------------

    def dispatch(
        self, query: str, inputs: dict | None = None, branch: str | None = None,
    ) -> dict:
        """Run one dispatch request to completion. Never raises WfctlError.

        Returns a dict with keys: state, error, message, workflow, tier,
        branch, inputs, run_id, run_url, dispatched, partial_catalog,
        warnings, transitions, candidates, available. The last two are
        filled when resolution fails: near-miss names and the full catalog.
        """
        result = {
            "state": IDLE,
            "error": None,
            "message": "",
            "workflow": None,
            "tier": "",
            "branch": "",
            "inputs": {},
            "run_id": None,
            "run_url": "",
            "dispatched": False,
            "partial_catalog": False,
            "warnings": [],
            "transitions": [IDLE],
            "candidates": [],
            "available": [],
        }

        try:
            self._enter(result, RESOLVING)
            workflow = self._resolve(query, result)
            disabled = workflow.get("state") == "disabled"

            self._enter(result, VALIDATING)
            ref = choose_branch(branch, self.default_branch)
            result["branch"] = ref
            valid, declared = self._validate(workflow, ref, inputs or {}, result)
            result["inputs"] = valid

            self._enter(result, DISPATCHING)
            known_ids = self._snapshot_runs(workflow["id"])
            dispatched_at = self.now()
            self._dispatch(workflow, ref, valid, declared, disabled)
            result["dispatched"] = True

            self._enter(result, AWAITING_RUN_ID)
            run = self._await_run_id(workflow, known_ids, dispatched_at)
        except WfctlError as e:
            result["error"] = e.kind
            result["message"] = str(e)
            if isinstance(e, ResolutionError):
                result["candidates"] = e.candidates
                result["available"] = e.available
            self._enter(result, FAILED)
            self._incr("dispatches", outcome=e.kind)
            if e.kind == RunIdUnavailable.kind:
                logger.warning("%s", e)
            else:
                logger.error("%s", e)
            return result

        result["run_id"] = run.get("id")
        result["run_url"] = run.get("url", "")
        result["message"] = (
            f"Workflow '{workflow['name']}' started on {result['branch']} "
            f"(run {result['run_id']})."
        )
        self._enter(result, DONE)
        self._incr("dispatches", outcome=DONE)
        logger.info("%s", result["message"])
        return result
