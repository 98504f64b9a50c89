"""Content optimizer: find the questions people ask about a topic, then answer them.

Question research runs in one of two modes:

- ``research`` feeds Tavily search results to the model as context,
- ``grounded`` lets the model search on its own through search-grounding tools.

The second step writes a short markdown answer built for AI citation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from ..models.adapter import RequestPayload
from ..models.resilient import ResilientCompletionClient
from ..search.tavily import TavilySearchClient


logger = logging.getLogger(__name__)

RESEARCH = "research"
GROUNDED = "grounded"
MODES = (RESEARCH, GROUNDED)

QUESTION_COUNT = 5


@dataclass
class Source:
    uri: str
    title: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"uri": self.uri, "title": self.title}


@dataclass
class QuestionAnalysis:
    """Top user questions for a topic and the sources behind them."""
    topic: str
    mode: str
    text: str
    sources: list[Source] = field(default_factory=list)
    used_model: str | None = None
    tools_stripped: bool = False


@dataclass
class OptimizationResult:
    questions: QuestionAnalysis
    content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.questions.topic,
            "mode": self.questions.mode,
            "questions_analysis": self.questions.text,
            "optimized_markdown": self.content,
            "sources": [s.to_dict() for s in self.questions.sources],
            "used_model": self.questions.used_model,
            "tools_stripped": self.questions.tools_stripped,
        }


def grounding_sources(grounding: Any) -> list[Source]:
    """Collect web sources from Gemini grounding metadata.

    Accepts one metadata dict or a per-candidate list of them, with either
    ``groundingChunks`` or the older ``groundingAttributions`` key.
    """
    if not grounding:
        return []
    blocks = grounding if isinstance(grounding, list) else [grounding]
    sources: list[Source] = []
    seen: set[str] = set()
    for block in blocks:
        if not isinstance(block, dict):
            continue
        entries = block.get("groundingChunks") or block.get("groundingAttributions") or []
        for entry in entries:
            web = entry.get("web") if isinstance(entry, dict) else None
            if not isinstance(web, dict) or not web.get("uri"):
                continue
            uri = str(web["uri"])
            if uri in seen:
                continue
            seen.add(uri)
            sources.append(Source(uri=uri, title=str(web.get("title") or "")))
    return sources


async def analyze_questions(
    client: ResilientCompletionClient,
    api_key: str,
    topic: str,
    *,
    mode: str = GROUNDED,
    search_client: TavilySearchClient | None = None,
) -> QuestionAnalysis:
    """Find the top questions users ask about `topic`.

    Research mode needs a `search_client`; its `SearchError` propagates. Both
    modes raise `CompletionError` when the model call fails.
    """
    topic = topic.strip()
    if not topic:
        raise ValueError("topic must be non-empty")
    if mode not in MODES:
        raise ValueError(f"Unknown mode {mode!r}; expected one of {', '.join(MODES)}")

    if mode == RESEARCH:
        if search_client is None:
            raise ValueError("research mode needs a search client")
        search = await search_client.search(f"common questions people ask about {topic}")
        payload = RequestPayload.from_prompt(
            f"Search Data:\n{search.as_context()}\n\n"
            f"Based ONLY on the above search data, what are the top {QUESTION_COUNT} questions users are asking?",
            system_instruction=(
                "You are a search analyst. Analyze the provided search results to identify the "
                f'{QUESTION_COUNT} most frequent and relevant user questions about: "{topic}". '
                "Structure your response as a numbered list."
            ),
        )
        result = await client.call(api_key, payload)
        sources = [Source(uri=r.url, title=r.title) for r in search.results if r.url]
    else:
        payload = RequestPayload.from_prompt(
            f'Find the top {QUESTION_COUNT} most frequent and specific questions users are asking about "{topic}". '
            "List them clearly.",
            system_instruction=(
                "You are an expert search trend analyst. Your goal is to identify the real, high-intent "
                "questions users are asking about a specific topic. Use Google Search to find current data."
            ),
            grounding=True,
        )
        result = await client.call(api_key, payload)
        sources = grounding_sources(result.grounding)
        if result.tools_stripped:
            logger.info("Question research for %r answered without search grounding", topic)

    return QuestionAnalysis(
        topic=topic,
        mode=mode,
        text=result.content,
        sources=sources,
        used_model=result.used_model,
        tools_stripped=result.tools_stripped,
    )


async def generate_optimized_content(
    client: ResilientCompletionClient,
    api_key: str,
    questions_analysis: str,
) -> str:
    """Write a ~200 word markdown answer to the analyzed questions."""
    payload = RequestPayload.from_prompt(
        "Based on the following analysis of user questions, write a single, highly structured, "
        "approximately 200-word response in clean Markdown. The content must directly and concisely "
        "answer the core themes of the questions, making it optimized for fast and accurate AI citation."
        f"\n\nUser Questions Analysis:\n{questions_analysis}",
        system_instruction=(
            "You are a world-class content strategist. Generate only the clean Markdown text. "
            "Use clear headings and lists. DO NOT include any introductory or concluding sentences "
            "outside of the requested Markdown body."
        ),
    )
    result = await client.call(api_key, payload)
    return result.content


async def optimize_content(
    client: ResilientCompletionClient,
    api_key: str,
    topic: str,
    *,
    mode: str = GROUNDED,
    search_client: TavilySearchClient | None = None,
    generate: bool = True,
) -> OptimizationResult:
    """Question research followed, unless `generate` is off, by content generation."""
    questions = await analyze_questions(client, api_key, topic, mode=mode, search_client=search_client)
    content = None
    if generate:
        content = await generate_optimized_content(client, api_key, questions.text)
    return OptimizationResult(questions=questions, content=content)
