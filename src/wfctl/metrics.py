"""Request-scoped counters for resolution, dispatch and mining.

A Metrics object is created by the caller and passed in explicitly; the core
never keeps counters in module state.
"""

from collections import Counter

PREFIX = "wfctl"


class Metrics:
    """Labelled counters with Prometheus text rendering."""

    def __init__(self):
        self._counters: Counter = Counter()

    def incr(self, name: str, amount: int = 1, **labels) -> None:
        key = (name, tuple(sorted((k, str(v)) for k, v in labels.items())))
        self._counters[key] += amount

    def get(self, name: str, **labels) -> int:
        key = (name, tuple(sorted((k, str(v)) for k, v in labels.items())))
        return self._counters[key]

    def total(self, name: str) -> int:
        """Sum of a counter across all label values."""
        return sum(v for (n, _), v in self._counters.items() if n == name)

    def snapshot(self) -> dict:
        """Return {name: {label string: value}} for JSON output."""
        out: dict[str, dict[str, int]] = {}
        for (name, labels), value in sorted(self._counters.items()):
            label_str = ",".join(f"{k}={v}" for k, v in labels)
            out.setdefault(name, {})[label_str] = value
        return out

    def to_prometheus(self) -> str:
        """Render counters in the Prometheus text exposition format."""
        lines = []
        seen = set()
        for (name, labels), value in sorted(self._counters.items()):
            metric = f"{PREFIX}_{name}"
            if metric not in seen:
                seen.add(metric)
                lines.append(f"# TYPE {metric} counter")
            if labels:
                label_str = ",".join(f'{k}="{v}"' for k, v in labels)
                lines.append(f"{metric}{{{label_str}}} {value}")
            else:
                lines.append(f"{metric} {value}")
        return "\n".join(lines) + ("\n" if lines else "")
