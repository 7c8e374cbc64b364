"""
Evaluation harness -- runs eval_prompts.jsonl through intent classification
and the intent-driven generator, and writes analytics/reports/eval_report.md.

Checks:
  - Intent correctness   (classified intent matches expected)
  - Visual coverage      (expected chart types present in the spec)
  - Renderability        (>= 2 visuals, first is a KPI card)
  - Spec consistency     (no issues left after repair)
  - Latency              (ms per prompt)
"""
from __future__ import annotations

import datetime
import json
import sys
import time
from pathlib import Path
from typing import Any

EVAL_PATH = Path(__file__).resolve().parent / "eval_prompts.jsonl"
REPORT_PATH = Path(__file__).resolve().parents[1] / "reports" / "eval_report.md"

SAMPLE_ROWS: list[dict[str, Any]] = [
    {"Date": "2024-01-05", "Region": "North", "Product": "Widget", "Category": "Hardware",
     "Revenue": 1200, "Quantity": 10, "Price": 120},
    {"Date": "2024-02-11", "Region": "South", "Product": "Gadget", "Category": "Hardware",
     "Revenue": 800, "Quantity": 16, "Price": 50},
    {"Date": "2024-03-17", "Region": "East", "Product": "Service", "Category": "Support",
     "Revenue": 1500, "Quantity": 3, "Price": 500},
    {"Date": "2024-04-02", "Region": "West", "Product": "Widget", "Category": "Hardware",
     "Revenue": 950, "Quantity": 8, "Price": 118.75},
    {"Date": "2024-05-23", "Region": "North", "Product": "Gadget", "Category": "Hardware",
     "Revenue": 640, "Quantity": 12, "Price": 53.3},
    {"Date": "2024-06-30", "Region": "South", "Product": "Service", "Category": "Support",
     "Revenue": 2100, "Quantity": 4, "Price": 525},
]


def _load_prompts() -> list[dict[str, Any]]:
    lines = EVAL_PATH.read_text().splitlines()
    return [json.loads(line) for line in lines if line.strip()]


def _run_one(case: dict[str, Any], schema) -> dict[str, Any]:
    """Run a single prompt through intent classification and generation."""
    from src.dashboard.intent import classify_intent
    from src.dashboard.repair import find_spec_issues, repair_spec
    from src.dashboard.synthesizer import generate_robust_dashboard

    prompt = case["prompt"]
    t0 = time.perf_counter()
    try:
        intent = classify_intent(prompt, schema)
        raw = generate_robust_dashboard(schema, SAMPLE_ROWS, prompt)
        issues = find_spec_issues(raw, schema)
        spec = repair_spec(raw, schema)
    except Exception as exc:
        return {
            "prompt": prompt, "error": str(exc),
            "latency_ms": int((time.perf_counter() - t0) * 1000),
            "intent": None, "intent_ok": False, "types_ok": False,
            "renderable": False, "issues": [], "success": False,
        }
    latency = int((time.perf_counter() - t0) * 1000)

    types = [v.type for v in spec.visuals]
    intent_ok = intent.type.value == case.get("expected_intent")
    types_ok = all(t in types for t in case.get("expected_types", []))
    renderable = len(types) >= 2 and types[0] == "card"

    return {
        "prompt": prompt,
        "error": None,
        "latency_ms": latency,
        "intent": intent.type.value,
        "intent_ok": intent_ok,
        "types_ok": types_ok,
        "renderable": renderable,
        "issues": issues,
        "title": spec.title,
        "types": types,
        "success": intent_ok and types_ok and renderable and not issues,
    }


def _pct(n: int, total: int) -> float:
    return (n / total * 100) if total else 0


def _generate_report(results: list[dict[str, Any]], cases: list[dict[str, Any]]) -> str:
    """Generate the Markdown eval report."""
    total = len(results)
    now = datetime.datetime.now().strftime("%Y-%m-%d %H:%M")

    successes = sum(1 for r in results if r["success"])
    intent_ok = sum(1 for r in results if r["intent_ok"])
    types_ok = sum(1 for r in results if r["types_ok"])
    renderable = sum(1 for r in results if r["renderable"])
    clean = sum(1 for r in results if not r["issues"] and not r["error"])

    latencies = sorted(r["latency_ms"] for r in results)
    avg_lat = sum(latencies) / len(latencies) if latencies else 0
    p50_lat = latencies[len(latencies) // 2] if latencies else 0
    max_lat = latencies[-1] if latencies else 0

    lines: list[str] = [
        "# Evaluation Report",
        "",
        f"> Generated: {now}  |  Prompts: **{total}**  |  Generator: intent-driven (local)",
        "",
        "---",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Overall success rate | **{_pct(successes, total):.0f}%** ({successes}/{total}) |",
        f"| Intent correctness | **{_pct(intent_ok, total):.0f}%** ({intent_ok}/{total}) |",
        f"| Expected visuals present | **{_pct(types_ok, total):.0f}%** ({types_ok}/{total}) |",
        f"| Renderable (card first, >= 2 visuals) | **{_pct(renderable, total):.0f}%** ({renderable}/{total}) |",
        f"| Consistent before repair | **{_pct(clean, total):.0f}%** ({clean}/{total}) |",
        "",
        "## Latency",
        "",
        "| Stat | ms |",
        "|------|-----|",
        f"| Mean | {avg_lat:.0f} |",
        f"| p50 | {p50_lat} |",
        f"| Max | {max_lat} |",
        "",
        "---",
        "",
        "## Per-Prompt Results",
        "",
        "| # | Prompt | Intent | Expected | Visuals | Pass |",
        "|---|--------|--------|----------|---------|------|",
    ]
    for i, (r, c) in enumerate(zip(results, cases), 1):
        text = r["prompt"][:50] + ("..." if len(r["prompt"]) > 50 else "")
        visuals = ", ".join(r.get("types", [])) or "--"
        p = "OK" if r["success"] else "ERROR"
        lines.append(f"| {i} | {text} | {r['intent'] or '--'} | {c.get('expected_intent')} | {visuals} | {p} |")
    lines.append("")

    failures = [(i, r) for i, r in enumerate(results, 1) if not r["success"]]
    lines.append("## Failures")
    lines.append("")
    if not failures:
        lines.append("None -- all prompts handled correctly.")
        lines.append("")
    for i, r in failures:
        lines.append(f"### #{i}: {r['prompt']}")
        lines.append("")
        if r.get("error"):
            lines.append(f"**Error:** `{r['error']}`")
        if r.get("issues"):
            lines.append(f"**Issues:** {r['issues']}")
        lines.append("")

    return "\n".join(lines)


def run():
    from src.dataset.schema_detector import detect_schema

    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")  # type: ignore[attr-defined]

    cases = _load_prompts()
    schema = detect_schema(SAMPLE_ROWS)
    print(f"Loaded {len(cases)} eval prompts.")
    print("Running evaluation...\n")

    results = []
    for i, case in enumerate(cases, 1):
        r = _run_one(case, schema)
        status = "PASS" if r["success"] else "FAIL"
        print(f"  [{i:2d}/{len(cases)}] {status}  {r['prompt'][:60]:<60}  {r['latency_ms']:>4d}ms  intent={r['intent']}")
        results.append(r)

    report = _generate_report(results, cases)
    REPORT_PATH.parent.mkdir(parents=True, exist_ok=True)
    REPORT_PATH.write_text(report, encoding="utf-8")
    print(f"\nReport written to {REPORT_PATH}")

    total = len(results)
    successes = sum(1 for r in results if r["success"])
    print(f"\n{'='*50}")
    print(f"  Success: {successes}/{total} ({_pct(successes, total):.0f}%)")
    print(f"{'='*50}")


if __name__ == "__main__":
    run()
