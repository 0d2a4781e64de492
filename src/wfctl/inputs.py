"""Workflow definition parsing and dispatch input filtering.

GitHub rejects a dispatch (422) that carries inputs the workflow does not
declare, so only declared inputs are ever sent, and nothing is sent when the
declaration could not be read.
"""

import logging

import yaml

logger = logging.getLogger(__name__)


def _triggers(doc: dict):
    """Return the workflow's `on:` section.

    YAML 1.1 reads a bare `on` key as boolean True, so check both.
    """
    if "on" in doc:
        return doc["on"]
    return doc.get(True)


def parse_workflow_definition(text: str) -> dict:
    """Parse workflow YAML into {dispatchable, inputs}.

    dispatchable is True/False, or None when the text could not be parsed.
    inputs is a list of dicts with keys: name, description, required,
    default, type, options.
    """
    try:
        doc = yaml.safe_load(text or "")
    except yaml.YAMLError as e:
        logger.warning("Could not parse workflow definition: %s", e)
        return {"dispatchable": None, "inputs": []}

    if not isinstance(doc, dict):
        return {"dispatchable": None, "inputs": []}

    on = _triggers(doc)
    if isinstance(on, str):
        return {"dispatchable": on == "workflow_dispatch", "inputs": []}
    if isinstance(on, list):
        return {"dispatchable": "workflow_dispatch" in on, "inputs": []}
    if not isinstance(on, dict) or "workflow_dispatch" not in on:
        return {"dispatchable": False, "inputs": []}

    dispatch = on.get("workflow_dispatch") or {}
    raw_inputs = dispatch.get("inputs") if isinstance(dispatch, dict) else None

    inputs = []
    for name, field in (raw_inputs or {}).items():
        field = field if isinstance(field, dict) else {}
        default = field.get("default")
        inputs.append({
            "name": str(name),
            "description": str(field.get("description") or ""),
            "required": bool(field.get("required", False)),
            "default": "" if default is None else _as_input_value(default),
            "type": str(field.get("type") or "string"),
            "options": [str(o) for o in field.get("options") or []],
        })
    return {"dispatchable": True, "inputs": inputs}


def declared_input_names(definition: dict) -> set[str]:
    return {i["name"] for i in definition.get("inputs", [])}


def _as_input_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filter_inputs(declared: set[str], requested: dict | None) -> dict[str, str]:
    """Keep only requested inputs that the workflow declares.

    An empty declaration yields an empty map, never the raw request.
    Unknown keys are dropped and logged, not treated as errors.
    """
    requested = requested or {}
    if not declared:
        if requested:
            logger.info(
                "Workflow declares no inputs; withholding %d requested input(s): %s",
                len(requested), ", ".join(sorted(requested)),
            )
        return {}

    valid = {}
    for key, value in requested.items():
        if key in declared:
            valid[key] = _as_input_value(value)
        else:
            logger.info("Dropping input %r: not accepted by this workflow", key)
    return valid


def missing_required_inputs(inputs: list[dict], provided: dict) -> list[str]:
    """Return names of required inputs with no default that were not provided."""
    return [
        i["name"] for i in inputs
        if i.get("required") and not i.get("default") and i["name"] not in provided
    ]


def parse_input_args(values: list[str] | None) -> dict[str, str]:
    """Parse repeated `key=value` CLI arguments into a dict."""
    result = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid input '{item}'. Expected key=value.")
        result[key.strip()] = value
    return result
