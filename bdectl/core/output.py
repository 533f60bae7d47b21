"""Structured output helper for bdectl commands."""

import json
from typing import Any

# Plain-text marker for each run status
STATUS_MARKERS = {
    "ok": "OK",
    "compliant": "OK",
    "restart_pending": "ACTION REQUIRED",
    "noncompliant": "WARNING",
    "failed": "CRITICAL",
}


class Output:
    """Helper for structured command output."""

    def __init__(self):
        self.data: dict[str, Any] = {}
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.actions: list[str] = []
        self._summary: str | None = None
        self._printed: bool = False

    def emit(self, data: dict[str, Any]) -> None:
        """Store structured output data."""
        self.data.update(data)

    def error(self, message: str) -> None:
        """Record an error message."""
        self.errors.append(message)

    def warning(self, message: str) -> None:
        """Record a warning message."""
        self.warnings.append(message)

    def action(self, message: str) -> None:
        """Record a change made to the system."""
        self.actions.append(message)

    def set_summary(self, summary: str) -> None:
        """Set a one-line summary."""
        self._summary = summary

    @property
    def summary(self) -> str:
        """Get summary or generate from data."""
        if self._summary:
            return self._summary
        if self.errors:
            return f"Error: {self.errors[0]}"
        if self.warnings:
            return f"Warning: {self.warnings[0]}"
        return "ok"

    def to_dict(self) -> dict[str, Any]:
        """Return data together with recorded messages."""
        result = dict(self.data)
        result["summary"] = self.summary
        if self.actions:
            result["actions"] = list(self.actions)
        if self.errors:
            result["errors"] = list(self.errors)
        if self.warnings:
            result["warnings"] = list(self.warnings)
        return result

    def to_json(self) -> str:
        """Return data as JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def render(self, format: str = "plain", title: str | None = None) -> None:
        """Print output in the specified format.

        Args:
            format: Output format - "json" or "plain"
            title: Optional title for plain text output
        """
        if self._printed:
            return
        self._printed = True

        if format == "json":
            print(self.to_json())
        else:
            print(self.to_plain(title))

    def to_plain(self, title: str | None = None) -> str:
        """Render output as formatted plain text."""
        lines = []

        if title:
            lines.append(title)
            lines.append("=" * len(title))
            lines.append("")

        status = self.data.get("status")
        if status:
            marker = STATUS_MARKERS.get(status, "CRITICAL")
            lines.append(f"[{marker}] Status: {status.upper().replace('_', ' ')}")
            lines.append("")

        skip_keys = {"status"}
        for key, value in self.data.items():
            if key in skip_keys:
                continue
            self._render_value(lines, key, value, indent=0)

        if self.actions:
            lines.append("")
            lines.append("Actions:")
            for action in self.actions:
                lines.append(f"  - {action}")

        if self.errors:
            lines.append("")
            lines.append("Errors:")
            for error in self.errors:
                lines.append(f"  [ERROR] {error}")

        if self.warnings:
            lines.append("")
            lines.append("Warnings:")
            for warning in self.warnings:
                lines.append(f"  [WARNING] {warning}")

        if self._summary:
            lines.append("")
            lines.append(self._summary)

        return "\n".join(lines)

    def _render_value(self, lines: list, key: str | int, value: Any, indent: int = 0) -> None:
        """Recursively render a value with proper formatting."""
        prefix = "  " * indent

        if isinstance(key, int):
            display_key = str(key)
        else:
            display_key = str(key).replace("_", " ").title()

        if isinstance(value, dict):
            lines.append(f"{prefix}{display_key}:")
            for k, v in value.items():
                self._render_value(lines, k, v, indent + 1)
        elif isinstance(value, list):
            if not value:
                lines.append(f"{prefix}{display_key}: (none)")
            else:
                lines.append(f"{prefix}{display_key}:")
                for item in value:
                    if isinstance(item, dict):
                        summary = ", ".join(f"{k}={v}" for k, v in item.items())
                        lines.append(f"{prefix}  - {summary}")
                    else:
                        lines.append(f"{prefix}  - {item}")
        elif isinstance(value, bool):
            lines.append(f"{prefix}{display_key}: {'yes' if value else 'no'}")
        elif isinstance(value, float):
            if value == int(value):
                lines.append(f"{prefix}{display_key}: {int(value)}")
            else:
                lines.append(f"{prefix}{display_key}: {value:.1f}")
        else:
            lines.append(f"{prefix}{display_key}: {value}")
