"""Tests for answer synthesis."""

from __future__ import annotations

from groundwork.graph.reasoning import INSUFFICIENT_EVIDENCE_TEXT, ComposedAnswer
from groundwork.rag.synthesizer import Synthesizer, fallback_text


def _answer() -> ComposedAnswer:
    return ComposedAnswer(
        text="Prohibited: x",
        conclusions=[{"text": "Prohibited: Hypermix cannot be called antiparassitario.", "confidence": 1.0}],
        support=[
            {"id": "c1", "snippet": "Hypermix cannot be called antiparassitario.", "path": "claims.txt"},
        ],
        valid=True,
    )


def test_fallback_lists_support_with_sources():
    text = fallback_text(_answer())
    assert text.startswith("## Summary")
    assert "- [S1] Hypermix cannot be called antiparassitario." in text
    assert "## Sources\n[S1] claims.txt" in text


def test_fallback_with_conclusions_only():
    answer = ComposedAnswer(text="", conclusions=[{"text": "Only a conclusion"}])
    assert "- Only a conclusion" in fallback_text(answer)


def test_fallback_insufficient_evidence():
    text = fallback_text(ComposedAnswer(text=INSUFFICIENT_EVIDENCE_TEXT))
    assert "Insufficient evidence" in text
    assert "## Sources" not in text


def test_fallback_empty_answer():
    assert "No matching items found." in fallback_text(ComposedAnswer(text=""))


def test_without_generator_uses_fallback():
    assert Synthesizer().synthesize("q", _answer()) == fallback_text(_answer())


def test_generator_receives_conclusions_and_sources(fake_generator):
    gen = fake_generator(lambda p: "  Hypermix is a supplement (S1).  ")
    out = Synthesizer(gen, "model").synthesize("posso dire antiparassitario?", _answer(), ["policy_lookup"])
    assert out == "Hypermix is a supplement (S1)."
    [prompt] = gen.calls_matching("You are a company assistant")
    assert "[C1] Prohibited: Hypermix" in prompt
    assert "[S1] Hypermix cannot be called" in prompt
    assert "Intents: policy_lookup" in prompt


def test_generator_failure_or_empty_reply_falls_back(fake_generator):
    assert Synthesizer(fake_generator(fail=True), "m").synthesize("q", _answer()) == fallback_text(_answer())
    assert Synthesizer(fake_generator(lambda p: "   "), "m").synthesize("q", _answer()) == fallback_text(_answer())
