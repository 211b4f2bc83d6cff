"""Search saved links from the command line.

Usage::

    python -m linkforge.cli.search "vector databases" --limit 5
    python -m linkforge.cli.search "prompt caching" --passages
    python -m linkforge.cli.search "which tools help with evals?" --ask

``--ask`` answers the question with the configured LLM (Anthropic when
``ANTHROPIC_API_KEY`` is set, otherwise Ollama) even if ``QA_ENABLED`` is
off; ``--limit`` then caps the number of sources listed.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from linkforge.config.settings import Settings
from linkforge.models.graph import LinkPassages, SearchResult
from linkforge.models.qa import QAAnswer
from linkforge.utils.errors import ConfigurationError, LinkForgeError
from linkforge.utils.logging import configure_logging


def _print_results(results: list[SearchResult]) -> None:
    if not results:
        print("No results.")
        return
    for rank, result in enumerate(results, start=1):
        link = result.link
        forge = f"{link.forge_score:.2f}" if link.forge_score is not None else "-"
        print(f"{rank:>2}. {link.title or link.url}")
        print(f"    {link.url}")
        details = f"score {result.score:.3f} | forge {forge} | {result.match_type.value}"
        if result.category_name:
            details += f" | {result.category_name}"
        print(f"    {details}")
        if result.tags:
            print(f"    tags: {', '.join(result.tags)}")


def _print_passages(groups: list[LinkPassages]) -> None:
    if not groups:
        print("No passages.")
        return
    for rank, group in enumerate(groups, start=1):
        print(f"{rank:>2}. {group.title or group.url}  (best {group.best_score:.3f})")
        print(f"    {group.url}")
        for hit in group.passages:
            snippet = " ".join(hit.chunk_text.split())[:240]
            print(f"    [{hit.chunk_index}] {hit.score:.3f}  {snippet}")


def _print_answer(answer: QAAnswer) -> None:
    print(answer.answer)
    if not answer.sources:
        return
    print()
    print(f"Sources ({answer.links_considered} links, {answer.passages_used} passages considered):")
    for rank, source in enumerate(answer.sources, start=1):
        details = f"relevance {source.relevance:.0%} | forge {source.forge_score:.2f}"
        if source.category:
            details += f" | {source.category}"
        print(f"{rank:>2}. {source.title or source.url}")
        print(f"    {source.url}")
        print(f"    {details}")


async def _handle_search(args: argparse.Namespace, app_settings: Settings) -> int:
    from linkforge.main import build_components, close_components

    if args.ask:
        app_settings = app_settings.model_copy(update={"qa_enabled": True})
    components = build_components(app_settings)
    retrieval = components["retrieval_service"]
    try:
        if args.ask:
            qa_service = components["qa_service"]
            if qa_service is None:
                raise ConfigurationError("No LLM provider is available for --ask")
            _print_answer(await qa_service.ask(args.query, max_sources=args.limit))
        elif args.passages:
            _print_passages(await retrieval.search_passages(args.query, args.limit))
        else:
            _print_results(await retrieval.search(args.query, args.limit))
    finally:
        await close_components(components)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m linkforge.cli.search",
        description="Hybrid search over saved links.",
    )
    parser.add_argument("query", help="Search text")
    parser.add_argument("--limit", type=int, default=None, help="Number of links to return")
    parser.add_argument(
        "--passages",
        action="store_true",
        help="Search chunks and show the best passages per link",
    )
    parser.add_argument(
        "--ask",
        action="store_true",
        help="Answer the query as a question from the saved links",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for search."""
    args = _build_parser().parse_args(argv)
    app_settings = Settings()
    configure_logging(log_level="WARNING")

    try:
        exit_code = asyncio.run(_handle_search(args, app_settings))
    except (LinkForgeError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
