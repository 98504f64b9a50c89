"""Tests for citation detection, classification and authority scoring."""

from __future__ import annotations

import unittest
from unittest.mock import AsyncMock

from geolens.citation.engine import (
    DEFINITION_OWNERSHIP,
    ERROR,
    MENTION_ONLY,
    NO_MENTION,
    STRONG_CITATION,
    CitationAnalysis,
    analyze_citation,
    calculate_authority_score,
    detect_citation_legacy,
    run_citation_audit,
)
from geolens.models.adapter import NormalizedResponse
from geolens.models.errors import InvalidCredentialError, TransientBackendError


class _FakeClient:
    def __init__(self, *replies) -> None:  # noqa: ANN002
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def call(self, api_key, payload):  # noqa: ANN001
        self.prompts.append(payload.contents[0]["content"])
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return NormalizedResponse(used_model="gemini-2.0-flash", candidates=[reply])


class LegacyDetectionTests(unittest.TestCase):
    def test_explicit_attribution(self) -> None:
        text = "Helpdesks vary. According to Acme, ticket triage is the core workflow. Others disagree."
        result = detect_citation_legacy(text, "Acme")
        self.assertTrue(result.is_cited)
        self.assertEqual(result.type, "Explicit Attribution")
        self.assertEqual(result.sentence, "According to Acme, ticket triage is the core workflow.")
        self.assertEqual(result.confidence, 1.0)

    def test_active_voice_attribution(self) -> None:
        result = detect_citation_legacy("Acme defines omnichannel support as one inbox.", "acme")
        self.assertTrue(result.is_cited)
        self.assertEqual(result.type, "Active Voice Attribution")

    def test_mention_only_and_absent(self) -> None:
        mention = detect_citation_legacy("Popular tools include Zendesk and Acme", "Acme")
        self.assertFalse(mention.is_cited)
        self.assertTrue(mention.is_mentioned)
        self.assertEqual(mention.confidence, 0.5)
        self.assertEqual(mention.sentence, "Popular tools include Zendesk and Acme")

        absent = detect_citation_legacy("Zendesk leads the market.", "Acme")
        self.assertFalse(absent.is_mentioned)
        self.assertEqual(absent.confidence, 0.0)


class AuthorityScoreTests(unittest.TestCase):
    def test_bonuses_caps_and_average(self) -> None:
        analyses = [
            CitationAnalysis(citation_level=DEFINITION_OWNERSHIP, confidence_score=95),
            CitationAnalysis(citation_level=STRONG_CITATION, confidence_score=60),
            CitationAnalysis(citation_level=NO_MENTION, confidence_score=40),
            CitationAnalysis(citation_level=MENTION_ONLY, confidence_score=30),
        ]
        # (100 + 65 + 0 + 30) / 4 = 48.75
        self.assertEqual(calculate_authority_score(analyses), 49)

    def test_empty_and_missing(self) -> None:
        self.assertEqual(calculate_authority_score([]), 0)
        self.assertEqual(
            calculate_authority_score([None, CitationAnalysis(citation_level=MENTION_ONLY, confidence_score=50)]),
            25,
        )


class AnalyzeCitationTests(unittest.IsolatedAsyncioTestCase):
    async def test_model_classification_is_used(self) -> None:
        client = _FakeClient(
            '{"citation_level": "strong_citation", "platform_trust_score": 82, '
            '"citation_sentence": "Acme defines X.", "removability_passed": false, "recommended_fix": ""}'
        )
        analysis = await analyze_citation(client, "k", "Acme defines X.", "Acme", "Zendesk", "Perplexity")

        self.assertEqual(analysis.citation_level, STRONG_CITATION)
        self.assertEqual(analysis.confidence_score, 82.0)
        self.assertEqual(analysis.platform, "Perplexity")
        self.assertFalse(analysis.removability_passed)
        self.assertIsNone(analysis.recommended_fix)
        self.assertFalse(analysis.fallback)

    async def test_falls_back_to_phrase_detection(self) -> None:
        client = _FakeClient(TransientBackendError("down"), "garbage")
        text = "According to Acme, triage matters."

        first = await analyze_citation(client, "k", text, "Acme")
        second = await analyze_citation(client, "k", text, "Acme")

        for analysis in (first, second):
            self.assertTrue(analysis.fallback)
            self.assertEqual(analysis.citation_level, STRONG_CITATION)
            self.assertEqual(analysis.confidence_score, 100.0)
            self.assertEqual(analysis.why_not_cited, "AI Analysis Failed")

    async def test_empty_text_short_circuits(self) -> None:
        client = _FakeClient()
        analysis = await analyze_citation(client, "k", "", "Acme")
        self.assertEqual(analysis.citation_level, NO_MENTION)
        self.assertEqual(client.prompts, [])


class CitationAuditTests(unittest.IsolatedAsyncioTestCase):
    async def test_audit_scores_each_platform_and_records_errors(self) -> None:
        replies = []
        for i in range(5):
            if i == 2:
                replies.append(TransientBackendError("The AI service failed"))
                continue
            replies.append(f"Answer {i} mentions Acme.")
            replies.append('{"citation_level": "MENTION_ONLY", "platform_trust_score": 40}')
        client = _FakeClient(*replies)
        sleep = AsyncMock()

        audits = await run_citation_audit(
            client, "k", "Acme", "helpdesk", "Zendesk", platforms=["Perplexity"], delay_seconds=1.0, sleep=sleep
        )

        self.assertEqual(len(audits), 1)
        samples = audits[0].samples
        self.assertEqual(len(samples), 5)
        self.assertEqual(samples[2].analysis.citation_level, ERROR)
        self.assertIn("Generation Failed", samples[2].analysis.why_not_cited)
        self.assertEqual(samples[0].used_model, "gemini-2.0-flash")
        self.assertEqual(audits[0].authority_score, 32)  # 4 * 40 / 5
        self.assertEqual(sleep.await_count, 4)
        self.assertTrue(client.prompts[0].startswith("You are Perplexity AI."))
        self.assertTrue(client.prompts[0].endswith("User Query: Define Acme and its role in helpdesk."))

    async def test_invalid_credential_aborts_audit(self) -> None:
        client = _FakeClient(InvalidCredentialError("bad key"))
        with self.assertRaises(InvalidCredentialError):
            await run_citation_audit(client, "k", "Acme", "helpdesk", sleep=AsyncMock())

    async def test_unknown_platform_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            await run_citation_audit(_FakeClient(), "k", "Acme", "helpdesk", platforms=["Bard"])


if __name__ == "__main__":
    unittest.main()
