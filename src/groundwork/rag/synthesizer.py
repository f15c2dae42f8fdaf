"""Answer synthesis: structured answer → prose.

The text-generation call is given the conclusions and the numbered evidence
and asked to cite ``(S#)`` sources without adding facts. When no generator is
configured, or the call fails, a deterministic extractive answer is built
from the same material.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from groundwork.rag.llm_client import TextGenerator

if TYPE_CHECKING:
    from groundwork.graph.reasoning import ComposedAnswer

logger = logging.getLogger(__name__)

_MAX_ITEMS = 10

_PROMPT = """\
You are a company assistant. Answer like a competent, concise colleague.
User query: "{query}"
Intents: {intents}

Candidate conclusions:
{conclusions}
Supporting evidence (do not go beyond it):
{support}

INSTRUCTIONS:
1. Do NOT introduce information the evidence does not support.
2. If the evidence is insufficient, say so and name the data that would help.
3. Always cite sources with (S#) next to the relevant sentences.
4. Answer in Italian if the query is in Italian, otherwise in English.
5. Structure: short summary, details, risks (if any), next steps, sources.

Write the answer now."""


class Synthesizer:
    """Turns a ComposedAnswer into the final answer text.

    Args:
        generator: Text generator; None always uses the extractive fallback.
        model: Model passed to the generator.
        max_tokens: Output token budget.
    """

    def __init__(
        self,
        generator: TextGenerator | None = None,
        model: str = "",
        max_tokens: int = 1200,
    ) -> None:
        self.generator = generator
        self.model = model
        self.max_tokens = max_tokens

    def synthesize(self, query: str, answer: ComposedAnswer, intents: list[str] | None = None) -> str:
        """Return prose for *answer*. Never raises."""
        if self.generator is None:
            return fallback_text(answer)
        conclusions = "\n".join(
            f"[C{i + 1}] {c['text']}" for i, c in enumerate(answer.conclusions)
        ) or "(none)"
        support = "\n".join(
            f"[S{i + 1}] {s.get('snippet', '')}" for i, s in enumerate(answer.support)
        ) or "(none)"
        prompt = _PROMPT.format(
            query=query,
            intents=", ".join(intents or []) or "unspecified",
            conclusions=conclusions,
            support=support,
        )
        try:
            text = self.generator.generate(self.model, prompt, self.max_tokens, 0.4)
        except Exception as exc:
            logger.warning("stage=synthesize query=%r call failed: %s", query, exc)
            return fallback_text(answer)
        return text.strip() or fallback_text(answer)


def fallback_text(answer: ComposedAnswer) -> str:
    """Extractive answer: summary header, detail bullets, and ``[S#]`` sources."""
    items: list[str] = []
    if answer.support:
        for i, s in enumerate(answer.support[:_MAX_ITEMS]):
            line = f"- [S{i + 1}] {s.get('snippet', '')}"
            if s.get("path"):
                line += f"\n  ({s['path']})"
            items.append(line)
    elif answer.conclusions:
        items = [f"- {c['text']}" for c in answer.conclusions[:_MAX_ITEMS]]
    elif answer.text.strip():
        items = [answer.text[:1200]]

    header = "## Summary\nResults assembled without AI synthesis (fallback)."
    body = "\n\n## Details\n" + "\n".join(items) if items else "\n\nNo matching items found."
    sources = ""
    if answer.support:
        sources = "\n\n## Sources\n" + "\n".join(
            f"[S{i + 1}] {s.get('path') or s.get('id') or 'source'}"
            for i, s in enumerate(answer.support[:_MAX_ITEMS])
        )
    return f"{header}{body}{sources}"
