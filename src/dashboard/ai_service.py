"""
AI collaborator adapter.

Builds the generation / refinement / insight prompts, sends them through
:func:`call_llm`, and turns the reply into plain data.  Three outcomes are
possible for every call:

  * a parsed result
  * :class:`FallbackRequested`: the model is unavailable, rate limited,
    out of credits, failing server-side, or replied with something that is
    not a usable spec.  Callers switch to local generation.
  * :class:`CollaboratorError`: a transport failure worth retrying.

Replies are *not* trusted: the returned specs are raw dicts and still go
through ``repair_spec``.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Sequence

import httpx
from pydantic import BaseModel, Field

from src.core.config import get_settings
from src.core.logging import get_logger
from src.dashboard.llm_client import LLMHTTPError, LLMUnavailable, call_llm
from src.dashboard.spec import ChatMessage, ColumnSchema, DashboardSpec

logger = get_logger(__name__)

_FALLBACK_STATUS = {402, 429}


class FallbackRequested(RuntimeError):
    """The collaborator asked the caller to use local generation."""


class CollaboratorError(RuntimeError):
    """Transport-level failure talking to the collaborator."""


# ── Request model ───────────────────────────────────────


class GenerationRequest(BaseModel):
    """Everything the collaborator sees for one call."""

    schema_: list[ColumnSchema] = Field(default_factory=list, alias="schema")
    sample_data: list[dict[str, Any]] = Field(default_factory=list, alias="sampleData")
    prompt: str
    current_spec: DashboardSpec | None = Field(None, alias="currentSpec")
    is_refinement: bool = Field(False, alias="isRefinement")
    conversation_history: list[dict[str, str]] = Field(
        default_factory=list, alias="conversationHistory",
    )

    model_config = {"populate_by_name": True}


# ── Prompt builders ─────────────────────────────────────


_OUTPUT_CONTRACT = """You MUST respond with ONLY valid JSON matching this exact structure:
{
  "title": "Dashboard Title",
  "visuals": [
    {
      "id": "v1",
      "type": "card" | "bar" | "line" | "pie" | "table" | "area" | "scatter" | "histogram",
      "title": "Visual Title",
      "metrics": ["SUM(columnName)"],
      "dimensions": ["columnName"],
      "sort": "asc" | "desc"
    }
  ]
}
Do not include any markdown, explanations, or text outside the JSON."""


def build_system_prompt(request: GenerationRequest) -> str:
    schema_json = json.dumps(
        [c.model_dump(by_alias=True) for c in request.schema_], indent=2, default=str,
    )
    sample_json = json.dumps(request.sample_data[:10], indent=2, default=str)
    return f"""You are an expert BI dashboard architect.
Analyze the data schema and sample data, then design an optimal dashboard
specification for the user's natural language request.

SCHEMA (columns with their roles):
{schema_json}

SAMPLE DATA (first 10 rows):
{sample_json}

RULES:
1. Only use column names that exist in the schema
2. Use appropriate chart types for the data:
   - "card" for single KPI metrics (totals, averages)
   - "bar" for comparing categories (dimensions vs measures)
   - "line" for time series trends (date dimensions)
   - "pie" for distribution/share analysis (max 6 slices)
   - "table" for detailed data views (top N rankings)
3. Generate 3-6 visuals that together tell a complete data story
4. Make titles clear and business-friendly
5. Always include at least one KPI card

{_OUTPUT_CONTRACT}"""


def build_user_prompt(request: GenerationRequest) -> str:
    if not request.is_refinement:
        return f'Create a dashboard for: "{request.prompt}"'

    history = "\n".join(
        f"{turn['role']}: {turn['content']}" for turn in request.conversation_history
    )
    current = json.dumps(
        request.current_spec.to_wire() if request.current_spec else {}, indent=2,
    )
    return f"""CURRENT DASHBOARD:
{current}

RECENT CONVERSATION:
{history or "(none)"}

Modify the current dashboard according to: "{request.prompt}"
Return the complete updated dashboard, plus a short "message" field
describing what you changed."""


def build_insights_prompt(spec: DashboardSpec) -> str:
    visual_titles = ", ".join(v.title for v in spec.visuals)
    return (
        f"Generate 4-5 actionable business insights based on this dashboard: {spec.title}\n"
        f"Visuals: {visual_titles}\n"
        'Respond with ONLY JSON of the form {"insights": ["...", "..."]}.'
    )


# ── Reply parsing ───────────────────────────────────────


def extract_json(text: str) -> Any:
    """Parse JSON from *text*, tolerating a surrounding Markdown code fence."""
    body = text
    if "```json" in body:
        body = body.split("```json", 1)[1].split("```", 1)[0]
    elif "```" in body:
        body = body.split("```", 1)[1].split("```", 1)[0]
    try:
        return json.loads(body.strip())
    except json.JSONDecodeError as exc:
        raise FallbackRequested(f"Collaborator reply is not valid JSON: {exc}") from exc


def _spec_payload(data: Any) -> dict[str, Any]:
    if isinstance(data, dict) and isinstance(data.get("spec"), dict):
        data = data["spec"]
    if (
        not isinstance(data, dict)
        or not data.get("title")
        or not isinstance(data.get("visuals"), list)
        or not data["visuals"]
    ):
        raise FallbackRequested("Invalid dashboard spec structure")
    return data


# ── Adapter ─────────────────────────────────────────────


class AICollaborator:
    """Thin stateful wrapper holding the provider choice and the LLM callable."""

    def __init__(
        self,
        provider: str | None = None,
        llm: Callable[..., str] = call_llm,
    ):
        self.provider = provider
        self._llm = llm

    def _complete(self, prompt: str, system: str | None = None) -> str:
        try:
            text = self._llm(prompt, provider=self.provider, system=system)
        except (LLMUnavailable, NotImplementedError) as exc:
            raise FallbackRequested(str(exc)) from exc
        except LLMHTTPError as exc:
            if exc.status_code in _FALLBACK_STATUS or exc.status_code >= 500:
                raise FallbackRequested(str(exc)) from exc
            raise CollaboratorError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"Transport error: {exc}") from exc
        except Exception as exc:
            # SDK client errors (connection, timeout, API status)
            raise CollaboratorError(f"{type(exc).__name__}: {exc}") from exc
        if not text:
            raise FallbackRequested("No content in collaborator reply")
        return text

    def generate(
        self,
        schema: list[ColumnSchema],
        sample_rows: Sequence[dict[str, Any]],
        prompt: str,
    ) -> dict[str, Any]:
        """Ask for a fresh dashboard; returns the raw (unrepaired) spec dict."""
        settings = get_settings()
        request = GenerationRequest(
            schema=schema,
            sample_data=list(sample_rows)[: settings.ai_sample_rows],
            prompt=prompt,
        )
        text = self._complete(build_user_prompt(request), build_system_prompt(request))
        spec = _spec_payload(extract_json(text))
        logger.info("Collaborator spec received: %s", spec.get("title"))
        return spec

    def refine(
        self,
        current: DashboardSpec,
        schema: list[ColumnSchema],
        sample_rows: Sequence[dict[str, Any]],
        instruction: str,
        history: Sequence[ChatMessage] = (),
    ) -> tuple[dict[str, Any], str | None]:
        """Ask for a modified dashboard; returns ``(raw spec, message or None)``."""
        settings = get_settings()
        window = list(history)[-settings.history_window:] if settings.history_window else []
        request = GenerationRequest(
            schema=schema,
            sample_data=list(sample_rows)[: settings.refinement_sample_rows],
            prompt=instruction,
            current_spec=current,
            is_refinement=True,
            conversation_history=[{"role": m.role, "content": m.content} for m in window],
        )
        data = extract_json(self._complete(build_user_prompt(request), build_system_prompt(request)))
        message = data.get("message") if isinstance(data, dict) else None
        return _spec_payload(data), message if isinstance(message, str) else None

    def insights(
        self,
        spec: DashboardSpec,
        schema: list[ColumnSchema],
        sample_rows: Sequence[dict[str, Any]],
    ) -> list[str]:
        request = GenerationRequest(
            schema=schema,
            sample_data=list(sample_rows)[:20],
            prompt=build_insights_prompt(spec),
        )
        data = extract_json(self._complete(request.prompt))
        items = data.get("insights") if isinstance(data, dict) else data
        if not isinstance(items, list) or not items:
            raise FallbackRequested("Collaborator returned no insights")
        return [str(i) for i in items]
