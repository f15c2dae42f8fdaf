"""Reason, validate, and compose stages of the task graph.

All three stages are local and deterministic:

  reason(evidence, goal)      goal-specific conclusions + supporting snippets
  validate(result, evidence)  structural and conflict checks
  compose(result, format)     grounded, citable payload for the synthesizer
"""

from __future__ import annotations

import datetime
import re
from dataclasses import asdict, dataclass, field

from groundwork.annotate.dates import first_date
from groundwork.db.models import Chunk
from groundwork.rag.retriever import ScoredChunk

_SNIPPET_CHARS = 200
_MAX_CONCLUSIONS = 5
_SUMMARY_SOURCES = 3
_TIMELINE_WINDOW_DAYS = 2

_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")
_WORD_SPLIT_RE = re.compile(r"\W+")
_DENY_RE = re.compile(r"non consentit|vietat|proib|prohibit|forbidden|not allowed|not permitted")
_ALLOW_RE = re.compile(r"consentit|permess|allowed|permitted")

INSUFFICIENT_EVIDENCE_TEXT = (
    "Insufficient evidence to answer this query.\n"
    "What would help: documents that mention the subject explicitly, "
    "or a more specific query (product, client, project, or date range)."
)


# ------------------------------------------------------------------
# Stage payloads
# ------------------------------------------------------------------


@dataclass
class Evidence:
    """A chunk flowing through the graph together with its annotations."""

    chunk: Chunk
    score: float = 0.0
    labels: list[str] = field(default_factory=list)
    entities: list[dict] = field(default_factory=list)
    dates: list[dict] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.chunk.id

    @classmethod
    def from_scored(cls, scored: ScoredChunk) -> Evidence:
        return cls(chunk=scored.chunk, score=scored.score)

    def to_payload(self) -> dict:
        return {
            "id": self.chunk.id,
            "path": self.chunk.path,
            "location": self.chunk.location,
            "score": self.score,
            "labels": list(self.labels),
            "entities": self.entities[:8],
            "dates": list(self.dates),
            "text": self.chunk.text[:300],
        }


@dataclass
class ReasonResult:
    goal: str
    conclusions: list[str] = field(default_factory=list)
    support: list[dict] = field(default_factory=list)
    offsets: dict[str, list[int]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ValidationResult:
    valid: bool
    issues: list[str]
    result: ReasonResult
    conflict_details: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "issues": list(self.issues),
            "conflict_details": self.conflict_details,
        }


@dataclass
class ComposedAnswer:
    """Structured answer handed to the synthesizer."""

    text: str
    conclusions: list[dict] = field(default_factory=list)
    support: list[dict] = field(default_factory=list)
    citations: list[dict] = field(default_factory=list)
    grounding_spans: list[dict] = field(default_factory=list)
    timeline: list[dict] | None = None
    valid: bool = False
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ------------------------------------------------------------------
# reason
# ------------------------------------------------------------------


def reason(evidence: list[Evidence], goal: str) -> ReasonResult:
    """Derive conclusions for *goal* from *evidence*.

    policy_lookup  prohibition-labelled chunks, then permissions
    timeline       dated chunks in date order
    comparison     chunks grouped by entity canonical form
    anything else  first sentence of the top three chunks

    Goal-specific strategies that find nothing fall back to the summary.
    """
    if not evidence:
        return ReasonResult(goal=goal)

    picked: list[tuple[str, Evidence]] | None = None
    if goal == "policy_lookup":
        picked = _policy(evidence)
    elif goal == "timeline":
        picked = _timeline(evidence)
    elif goal == "comparison":
        picked = _comparison(evidence)
    if not picked:
        picked = [(first_sentence(e.chunk.text), e) for e in evidence[:_SUMMARY_SOURCES]]

    result = ReasonResult(goal=goal)
    for conclusion, ev in picked:
        result.conclusions.append(conclusion)
        if ev.id not in result.offsets:
            result.support.append(_support_entry(ev))
            result.offsets[ev.id] = [ev.chunk.byte_start, ev.chunk.byte_end]
    return result


def first_sentence(text: str, limit: int = 240) -> str:
    """Return the first sentence of *text* (whitespace collapsed, at most *limit* chars)."""
    flat = " ".join(text.split())
    sentence = _SENTENCE_END_RE.split(flat, maxsplit=1)[0]
    return sentence[:limit]


def _support_entry(ev: Evidence) -> dict:
    return {
        "id": ev.id,
        "snippet": ev.chunk.text[:_SNIPPET_CHARS],
        "path": ev.chunk.path,
        "location": ev.chunk.location,
        "byte_start": ev.chunk.byte_start,
        "date": _evidence_date(ev),
    }


def _evidence_date(ev: Evidence) -> str | None:
    for item in ev.dates:
        if isinstance(item, dict) and item.get("norm"):
            return item["norm"]
    return first_date(ev.chunk.text)


def _policy(evidence: list[Evidence]) -> list[tuple[str, Evidence]]:
    prohibited = [e for e in evidence if "prohibition" in e.labels]
    permitted = [e for e in evidence if "permission" in e.labels and "prohibition" not in e.labels]
    picked = [(f"Prohibited: {first_sentence(e.chunk.text)}", e) for e in prohibited]
    picked += [(f"Permitted: {first_sentence(e.chunk.text)}", e) for e in permitted]
    return picked[:_MAX_CONCLUSIONS * 2]


def _timeline(evidence: list[Evidence]) -> list[tuple[str, Evidence]]:
    dated = [(d, e) for e in evidence if (d := _evidence_date(e))]
    dated.sort(key=lambda pair: pair[0])
    return [(f"{d}: {first_sentence(e.chunk.text)}", e) for d, e in dated]


def _comparison(evidence: list[Evidence]) -> list[tuple[str, Evidence]]:
    groups: dict[str, list[Evidence]] = {}
    for ev in evidence:
        for ent in ev.entities:
            canonical = ent.get("canonical") or str(ent.get("value", "")).lower()
            if canonical and ev not in groups.setdefault(canonical, []):
                groups[canonical].append(ev)
    ranked = sorted(groups.items(), key=lambda kv: len(kv[1]), reverse=True)
    return [
        (f"{name} ({len(items)} sources): {first_sentence(items[0].chunk.text)}", items[0])
        for name, items in ranked[:_MAX_CONCLUSIONS]
    ]


# ------------------------------------------------------------------
# validate
# ------------------------------------------------------------------


def validate(
    result: ReasonResult,
    evidence: list[Evidence] | None = None,
    upstream_issues: list[str] | None = None,
) -> ValidationResult:
    """Check *result* for missing or weak support and for contradictions.

    Issues:
      missing_support    no supporting snippets
      weak_evidence      a snippet shorter than 5 characters
      conflict_detected  conclusions both allow and deny
      entity_conflict    one product labelled both prohibition and permission
    Upstream issues (e.g. an optional annotator that failed) are appended.
    """
    issues: list[str] = []
    if not result.support:
        issues.append("missing_support")
    elif any(len((s.get("snippet") or "").strip()) < 5 for s in result.support):
        issues.append("weak_evidence")

    lowered = [c.lower() for c in result.conclusions]
    has_deny = any(_DENY_RE.search(c) for c in lowered)
    has_allow = any(_ALLOW_RE.search(c) and not _DENY_RE.search(c) for c in lowered)
    if has_deny and has_allow:
        issues.append("conflict_detected")

    details = _entity_conflicts(evidence or [])
    if details:
        issues.append("entity_conflict")

    for issue in upstream_issues or []:
        if issue not in issues:
            issues.append(issue)
    return ValidationResult(
        valid=not issues, issues=issues, result=result, conflict_details=details
    )


def _entity_conflicts(evidence: list[Evidence]) -> list[dict]:
    by_product: dict[str, list[Evidence]] = {}
    for ev in evidence:
        for ent in ev.entities:
            if ent.get("type") != "product":
                continue
            key = ent.get("canonical") or str(ent.get("value", "")).lower()
            by_product.setdefault(key, []).append(ev)
    details: list[dict] = []
    for product, items in by_product.items():
        prohibitions = [e.id for e in items if "prohibition" in e.labels]
        permissions = [e.id for e in items if "permission" in e.labels]
        if prohibitions and permissions:
            details.append(
                {
                    "product": product,
                    "prohibition_examples": prohibitions[:2],
                    "permission_examples": permissions[:2],
                }
            )
    return details


# ------------------------------------------------------------------
# compose
# ------------------------------------------------------------------


def compose(
    result: ReasonResult | ValidationResult | list,
    format: str = "text",
) -> ComposedAnswer:
    """Render *result* into a grounded answer with ``[S#]`` sources.

    Raw evidence lists are summarised first. With neither conclusions nor
    support, the insufficient-evidence template is returned.
    """
    validation: ValidationResult | None = None
    if isinstance(result, ValidationResult):
        validation = result
        result = result.result
    elif isinstance(result, list):
        result = reason([_as_evidence(item) for item in result], "general_lookup")

    issues = list(validation.issues) if validation else []
    valid = validation.valid if validation else bool(result.support)

    if not result.conclusions and not result.support:
        return ComposedAnswer(
            text=INSUFFICIENT_EVIDENCE_TEXT,
            valid=False,
            issues=issues or ["missing_support"],
        )

    snippets = [(s.get("snippet") or "").lower() for s in result.support]
    conclusions = [
        {"text": c, "confidence": _grounding_confidence(c, snippets)}
        for c in result.conclusions
    ]
    spans = _grounding_spans(result)
    citations = [
        {
            "support_index": s["support_index"],
            "label": f"S{s['support_index'] + 1}",
            "chunk_id": s["chunk_id"],
            "tokens": list(dict.fromkeys(m["token"] for m in s["evidence_spans"]))[:6],
        }
        for s in spans
    ]
    timeline = None
    if format == "timeline" or result.goal == "timeline":
        timeline = cluster_timeline(result.support)

    if format == "list":
        body = "\n".join(f"- {c}" for c in result.conclusions)
    else:
        body = "\n".join(result.conclusions)
    sources = "\n".join(f"[S{i + 1}] {s.get('snippet', '')}" for i, s in enumerate(result.support))
    return ComposedAnswer(
        text=f"{body}\n\nSources:\n{sources}",
        conclusions=conclusions,
        support=list(result.support),
        citations=citations,
        grounding_spans=spans,
        timeline=timeline,
        valid=valid,
        issues=issues,
    )


def _as_evidence(item: object) -> Evidence:
    if isinstance(item, Evidence):
        return item
    if isinstance(item, ScoredChunk):
        return Evidence.from_scored(item)
    raise TypeError(f"Cannot compose from {type(item).__name__}")


def _tokens(text: str, min_len: int, limit: int) -> list[str]:
    return [t for t in _WORD_SPLIT_RE.split(text.lower()) if len(t) > min_len][:limit]


def _grounding_confidence(conclusion: str, snippets: list[str]) -> float:
    """Share of the conclusion's long tokens found in any snippet (0.3 without tokens)."""
    tokens = _tokens(conclusion, 5, 6)
    if not tokens:
        return 0.3
    hits = sum(1 for t in tokens if any(t in s for s in snippets))
    return hits / len(tokens)


def _grounding_spans(result: ReasonResult) -> list[dict]:
    """Exact token positions of conclusion terms inside each support snippet.

    ``absolute_start``/``absolute_end`` are UTF-8 byte offsets in the source
    document.
    """
    out: list[dict] = []
    for si, support in enumerate(result.support):
        snippet = support.get("snippet") or ""
        lower = snippet.lower()
        base = support.get("byte_start") or 0
        matches: list[dict] = []
        for ci, conclusion in enumerate(result.conclusions):
            for tok in _tokens(conclusion, 6, 4):
                idx = lower.find(tok)
                if idx < 0:
                    continue
                start = base + len(snippet[:idx].encode("utf-8"))
                matches.append(
                    {
                        "conclusion_index": ci,
                        "token": tok,
                        "start": idx,
                        "end": idx + len(tok),
                        "absolute_start": start,
                        "absolute_end": start + len(snippet[idx : idx + len(tok)].encode("utf-8")),
                    }
                )
        out.append({"support_index": si, "chunk_id": support.get("id"), "evidence_spans": matches})
    return out


def cluster_timeline(support: list[dict]) -> list[dict]:
    """Group dated support entries whose consecutive dates are at most two days apart."""
    events = []
    for s in support:
        norm = s.get("date") or first_date(s.get("snippet") or "")
        if norm:
            events.append((norm, s.get("snippet") or ""))
    events.sort(key=lambda e: e[0])
    if not events:
        return []

    groups: list[list[tuple[str, str]]] = [[events[0]]]
    for event in events[1:]:
        prev = datetime.date.fromisoformat(groups[-1][-1][0])
        this = datetime.date.fromisoformat(event[0])
        if (this - prev).days <= _TIMELINE_WINDOW_DAYS:
            groups[-1].append(event)
        else:
            groups.append([event])

    out = []
    for group in groups:
        start, end = group[0][0], group[-1][0]
        out.append(
            {
                "range": start if start == end else f"{start}..{end}",
                "count": len(group),
                "snippets": [snippet for _, snippet in group[:3]],
            }
        )
    return out
