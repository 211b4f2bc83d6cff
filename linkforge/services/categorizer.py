"""LLM-based link categorisation.

Sends the extracted title, description and an excerpt of the body text to
an :class:`ILLMProvider` and asks for a single JSON object describing the
link: a broad category, a handful of tags, a forge score (how likely the
link leads to building something), a content type, purpose, quality,
summary and key concepts.

LLMs wrap JSON in markdown fences or add commentary despite being told not
to, so the response is parsed with three strategies in order: the whole
response as JSON, the body of the first ```json fence, then the outermost
``{ ... }`` block.  If none yields a valid :class:`LinkCategorization`, a
second, stricter prompt is sent once at a lower temperature before giving
up with :class:`CategorizationError`.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from linkforge.interfaces.llm_provider import ILLMProvider
from linkforge.models.content import LinkCategorization
from linkforge.utils.errors import CategorizationError
from linkforge.utils.logging import get_logger

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

CONTENT_TYPES = ("tool", "tutorial", "pattern", "analysis", "reference", "commentary")
QUALITY_LEVELS = ("high", "medium", "low")

_MAX_EXCERPT_CHARS = 4000
_MAX_TAGS = 5

_SYSTEM_PROMPT = """You are a knowledge categorizer for a personal AI and developer tooling link library. Given a scraped web page or document, extract structured metadata.

Respond with ONLY valid JSON (no markdown fences, no explanation):
{
  "category": "One broad category name (e.g. 'LLM Frameworks', 'Developer Tools', 'AI Research', 'Infrastructure', 'Tutorials', 'Prompt Engineering')",
  "tags": ["lowercase-hyphenated-tags", "max-5-tags"],
  "summary": "One sentence summary of what this resource is about.",
  "quality": "high|medium|low",
  "forge_score": 0.0-1.0,
  "content_type": "tool|tutorial|pattern|analysis|reference|commentary",
  "purpose": "What problem does this solve?",
  "key_concepts": ["short noun phrases for the main ideas"]
}

Rules:
- category is a broad, reusable grouping, not too specific
- tags are lowercase, hyphenated, descriptive keywords
- quality: high = original research/tool/tutorial, medium = blog post/discussion, low = aggregator/list

forge_score is the probability that reading this leads to a concrete building action (install, adopt, configure):
  0.85-1.0 = the artifact itself, a repo or package you can install and use directly
  0.65-0.84 = a rich guide or tutorial with transferable code or patterns
  0.45-0.64 = substantive analysis, comparison or workflow description
  0.25-0.44 = a thin pointer to something useful elsewhere
  0.05-0.24 = pure commentary or opinion with no direct build value

content_type:
  tool = installable software, CLI, library or package
  tutorial = step-by-step guide with code examples
  pattern = reusable architectural or workflow pattern
  analysis = comparison, benchmark or deep-dive evaluation
  reference = documentation, spec or API reference
  commentary = opinion, thread or discussion"""

_SIMPLE_SYSTEM_PROMPT = "You classify web pages and return one valid JSON object."


class LinkCategorizer:
    """Categorises extracted content with an LLM.

    Output is normalised before validation: tags are lowercased, hyphenated
    and capped at five, unknown content types fall back to ``reference``,
    unknown quality levels fall back to ``medium`` and the forge score is
    clamped to ``[0, 1]``.
    """

    def __init__(self, llm_provider: ILLMProvider) -> None:
        self._llm = llm_provider
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def categorize(
        self,
        title: str,
        description: str,
        text: str,
        url: str,
    ) -> LinkCategorization:
        """Ask the LLM to categorise one link.

        Parameters
        ----------
        title, description, text:
            Extracted content.  Only the first few thousand characters of
            ``text`` are sent.
        url:
            The link itself, included for context.

        Raises
        ------
        CategorizationError
            If both attempts return output that cannot be parsed.
        LLMError
            If the provider call itself fails.
        """
        provider_name = self._llm.get_provider_name()
        user_prompt = self._build_prompt(title, description, text, url)

        response = await self._llm.complete(
            system_prompt=_SYSTEM_PROMPT,
            user_prompt=user_prompt,
            temperature=0.2,
            max_tokens=1500,
        )
        try:
            return self.parse_response(response)
        except CategorizationError as exc:
            self._logger.warning(
                "primary_categorization_failed",
                error=exc.message,
                provider=provider_name,
                url=url,
            )

        self._logger.info("retrying_categorization_with_simple_prompt", provider=provider_name)
        response = await self._llm.complete(
            system_prompt=_SIMPLE_SYSTEM_PROMPT,
            user_prompt=self._build_simple_prompt(title, text, url),
            temperature=0.1,
            max_tokens=800,
        )
        try:
            result = self.parse_response(response)
        except CategorizationError as exc:
            self._logger.error("retry_categorization_failed", error=exc.message, url=url)
            raise CategorizationError(
                message=f"LLM returned unusable categorization after retry: {exc.message}",
                provider_name=provider_name,
            ) from exc

        self._logger.info(
            "link_categorized",
            url=url,
            category=result.category,
            forge_score=result.forge_score,
        )
        return result

    def parse_response(self, response: str) -> LinkCategorization:
        """Parse and validate a raw LLM response.

        Raises
        ------
        CategorizationError
            If no JSON object can be found or it fails validation.
        """
        data = _extract_json_object(response)
        if data is None:
            raise CategorizationError(
                message=f"No JSON object in response: {response[:200]!r}",
                provider_name=self._llm.get_provider_name(),
            )
        try:
            return LinkCategorization.model_validate(_normalise(data))
        except ValidationError as exc:
            raise CategorizationError(
                message=f"Categorization failed validation: {exc.error_count()} error(s)",
                provider_name=self._llm.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # Prompt construction
    # ------------------------------------------------------------------

    @staticmethod
    def _build_prompt(title: str, description: str, text: str, url: str) -> str:
        excerpt = text[:_MAX_EXCERPT_CHARS]
        return (
            f"URL: {url}\n"
            f"Title: {title}\n"
            f"Description: {description}\n\n"
            f"Content:\n{excerpt}"
        )

    @staticmethod
    def _build_simple_prompt(title: str, text: str, url: str) -> str:
        return (
            'Return JSON with keys "category" (string), "tags" (list of strings), '
            '"forge_score" (number 0-1), "content_type" (one of '
            f"{', '.join(CONTENT_TYPES)}) and \"summary\" (string).\n\n"
            f"URL: {url}\nTitle: {title}\n\n{text[:1500]}"
        )


# ----------------------------------------------------------------------
# Parsing helpers
# ----------------------------------------------------------------------

def _extract_json_object(response: str) -> dict[str, Any] | None:
    """Return the first JSON object found in *response*, or ``None``."""
    text = response.strip()
    candidates = [text]

    fence_match = _JSON_FENCE_RE.search(text)
    if fence_match:
        candidates.append(fence_match.group(1).strip())

    brace_start = text.find("{")
    brace_end = text.rfind("}")
    if brace_start != -1 and brace_end > brace_start:
        candidates.append(text[brace_start : brace_end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _normalise_tag(tag: str) -> str:
    return re.sub(r"[\s_]+", "-", tag.strip().lower()).strip("-")


def _normalise(data: dict[str, Any]) -> dict[str, Any]:
    result = dict(data)

    category = result.get("category")
    if isinstance(category, str):
        result["category"] = category.strip()

    tags: list[str] = []
    for tag in result.get("tags") or []:
        if not isinstance(tag, str):
            continue
        cleaned = _normalise_tag(tag)
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    result["tags"] = tags[:_MAX_TAGS]

    score = result.get("forge_score", 0.5)
    if isinstance(score, int | float) and not isinstance(score, bool):
        result["forge_score"] = min(max(float(score), 0.0), 1.0)

    if result.get("content_type") not in CONTENT_TYPES:
        result["content_type"] = "reference"
    if result.get("quality") not in QUALITY_LEVELS:
        result["quality"] = "medium"

    for key in ("purpose", "summary"):
        if not isinstance(result.get(key), str):
            result[key] = ""

    concepts = result.get("key_concepts") or []
    result["key_concepts"] = [c.strip() for c in concepts if isinstance(c, str) and c.strip()]
    return result
