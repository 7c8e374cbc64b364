"""
Loads, parses, and caches the prompt rule tables from YAML.

The rule file is the single source of truth for:
  - intent triggers (ordered; order breaks ties)
  - the "by <word>" comparison pattern
  - coarse prompt signals used by the keyword dashboard generator
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

_RULES_PATH = Path(__file__).resolve().parents[2] / "rules" / "prompt_rules.yml"


# ── Typed rule objects ───────────────────────────────────

@dataclass(frozen=True)
class IntentRule:
    name: str
    triggers: tuple[re.Pattern[str], ...]

    def score(self, text: str) -> int:
        """Number of triggers that fire on *text*."""
        return sum(1 for p in self.triggers if p.search(text))


@dataclass(frozen=True)
class PromptRules:
    version: int
    intents: tuple[IntentRule, ...]
    by_pattern: re.Pattern[str]
    signals: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def intent_names(self) -> list[str]:
        return [r.name for r in self.intents]

    def has_signal(self, name: str, text: str) -> bool:
        """True if any substring registered under *name* occurs in *text*."""
        return any(word in text for word in self.signals.get(name, ()))


# ── Parsing ──────────────────────────────────────────────

def _parse_intent(raw: dict[str, Any]) -> IntentRule:
    return IntentRule(
        name=raw["name"],
        triggers=tuple(re.compile(t, re.IGNORECASE) for t in raw.get("triggers") or []),
    )


def parse_rules(raw: dict[str, Any]) -> PromptRules:
    return PromptRules(
        version=raw.get("version", 1),
        intents=tuple(_parse_intent(i) for i in raw.get("intents", [])),
        by_pattern=re.compile(raw.get("by_pattern", r"\bby\s+\w+"), re.IGNORECASE),
        signals={
            name: tuple(str(w).lower() for w in words)
            for name, words in (raw.get("prompt_signals") or {}).items()
        },
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_rules(path: str | None = None) -> PromptRules:
    """Load and cache the prompt rules from YAML."""
    with open(path or _RULES_PATH) as f:
        raw = yaml.safe_load(f)
    return parse_rules(raw)
