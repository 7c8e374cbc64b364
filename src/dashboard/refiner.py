"""
Conversational refinement of an existing dashboard.

The collaborator gets the first shot; when it asks for a fallback or fails,
a small ordered rule table patches a deep copy of the current spec.  The
first rule that actually changes something wins.

The returned spec is *not* repaired here; callers pass it through
``repair_spec`` before accepting it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from src.core.logging import get_logger
from src.dashboard.ai_service import AICollaborator, CollaboratorError, FallbackRequested
from src.dashboard.spec import ChatMessage, ColumnSchema, DashboardSpec

logger = get_logger(__name__)

LOCAL_FALLBACK_MESSAGE = "Applied refinement (limited local processing)"
_TITLE_RE = re.compile(r"""(?:title|rename)\s+(?:to\s+)?["']?([^"']+)["']?""", re.IGNORECASE)


class NoDashboardError(ValueError):
    """Refinement was requested with no current dashboard."""


@dataclass
class RefinementResult:
    spec: Any
    message: str
    source: str = "local"

    def to_dict(self) -> dict:
        spec = self.spec.to_wire() if isinstance(self.spec, DashboardSpec) else self.spec
        return {"spec": spec, "message": self.message, "source": self.source}


def _plural(n: int) -> str:
    return "s" if n > 1 else ""


def generate_refinement_message(instruction: str, old_spec: DashboardSpec, new_spec: DashboardSpec) -> str:
    """Acknowledge a collaborator refinement in conversational terms."""
    diff = len(new_spec.visuals) - len(old_spec.visuals)
    lower = instruction.lower()

    if any(w in lower for w in ("add", "include", "show")) and diff > 0:
        return f"Added {diff} new visualization{_plural(diff)} to your dashboard."
    if any(w in lower for w in ("remove", "delete", "hide")) and diff < 0:
        return f"Removed {-diff} visualization{_plural(-diff)} from your dashboard."
    if any(w in lower for w in ("change", "update", "modify")):
        return f'Updated your dashboard based on: "{instruction}"'
    if any(w in lower for w in ("chart", "graph", "visual")):
        return "Modified the visualizations in your dashboard."
    return f"Dashboard updated successfully! I've applied your changes: \"{instruction}\""


# ── Local rules ─────────────────────────────────────────


def _convert(spec: DashboardSpec, sources: tuple[str, ...], target: str) -> bool:
    for visual in spec.visuals:
        if visual.type in sources:
            visual.type = target
            return True
    return False


def _set_sort(spec: DashboardSpec, order: str) -> bool:
    for visual in spec.visuals:
        visual.sort = order
    return True


def _drop(spec: DashboardSpec, chart_type: str) -> bool:
    spec.visuals = [v for v in spec.visuals if v.type != chart_type]
    return True


def _retitle(spec: DashboardSpec, instruction: str) -> str | None:
    match = _TITLE_RE.search(instruction)
    if not match or not match.group(1).strip():
        return None
    spec.title = match.group(1).strip()
    return f'Changed title to "{spec.title}"'


_Rule = tuple[Callable[[str], bool], Callable[[DashboardSpec], bool], str]

_RULES: list[_Rule] = [
    (lambda t: "pie" in t, lambda s: _convert(s, ("bar",), "pie"), "Changed bar chart to pie chart"),
    (lambda t: "line" in t, lambda s: _convert(s, ("bar",), "line"), "Changed bar chart to line chart"),
    (lambda t: "bar" in t, lambda s: _convert(s, ("pie",), "bar"), "Changed pie chart to bar chart"),
    (lambda t: "table" in t, lambda s: _convert(s, ("bar", "pie", "line"), "table"), "Changed chart to table view"),
    (lambda t: "ascending" in t or "asc" in t, lambda s: _set_sort(s, "asc"), "Changed sort order to ascending"),
    (lambda t: "descending" in t or "desc" in t, lambda s: _set_sort(s, "desc"), "Changed sort order to descending"),
    (lambda t: ("remove" in t or "delete" in t) and "card" in t, lambda s: _drop(s, "card"), "Removed KPI cards"),
    (lambda t: ("remove" in t or "delete" in t) and "table" in t, lambda s: _drop(s, "table"), "Removed tables"),
]


def apply_local_refinement(spec: DashboardSpec, instruction: str) -> RefinementResult:
    """Deterministic rule-based patch of a copy of *spec*."""
    working = spec.model_copy(deep=True)
    lower = instruction.lower()

    for applies, action, message in _RULES:
        if applies(lower) and action(working):
            return RefinementResult(spec=working, message=message)

    if "title" in lower or "rename" in lower:
        message = _retitle(working, instruction)
        if message:
            return RefinementResult(spec=working, message=message)

    return RefinementResult(spec=working, message=LOCAL_FALLBACK_MESSAGE)


# ── Public API ──────────────────────────────────────────


def refine(
    current: DashboardSpec | None,
    schema: list[ColumnSchema],
    sample_rows: Sequence[dict[str, Any]],
    instruction: str,
    history: Sequence[ChatMessage] = (),
    collaborator: AICollaborator | None = None,
) -> RefinementResult:
    """Apply *instruction* to *current*; raises :class:`NoDashboardError` without one."""
    if current is None:
        raise NoDashboardError("No dashboard to refine. Generate a dashboard first.")

    collaborator = collaborator or AICollaborator()
    try:
        raw, message = collaborator.refine(current, schema, sample_rows, instruction, history)
    except (FallbackRequested, CollaboratorError) as exc:
        logger.warning("AI refinement failed, using local fallback: %s", exc)
        return apply_local_refinement(current, instruction)

    if not message:
        try:
            message = generate_refinement_message(instruction, current, DashboardSpec.model_validate(raw))
        except ValueError:
            message = f"Dashboard updated successfully! I've applied your changes: \"{instruction}\""
    return RefinementResult(spec=raw, message=message, source="ai")
