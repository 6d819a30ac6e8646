"""Discovery strategies and the classifier-then-fallback chain."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from core.config.settings import AppSettings
from core.llm.completion import CompletionClient
from core.templates.classifier import DEFAULT_CHAR_BUDGET, classify_placeholders
from core.templates.models import DiscoveryResult
from core.templates.normalizer import DEFAULT_CONTEXT_WINDOW
from core.templates.placeholder_parser import parse_placeholders
from core.utils.errors import UpstreamServiceError

logger = logging.getLogger("docfill.discovery")


class DiscoveryStrategy(Protocol):
    """Find placeholders in normalized text."""

    name: str

    def discover(self, text: str) -> DiscoveryResult:
        """Return every placeholder this strategy can see."""


@dataclass(frozen=True)
class RegexDiscovery:
    context_window: int = DEFAULT_CONTEXT_WINDOW
    name: str = "fallback"

    def discover(self, text: str) -> DiscoveryResult:
        return parse_placeholders(text, context_window=self.context_window)


@dataclass(frozen=True)
class ClassifierDiscovery:
    client: CompletionClient
    char_budget: int = DEFAULT_CHAR_BUDGET
    context_window: int = DEFAULT_CONTEXT_WINDOW
    name: str = "llm"

    def discover(self, text: str) -> DiscoveryResult:
        return classify_placeholders(
            text,
            self.client,
            char_budget=self.char_budget,
            context_window=self.context_window,
        )


def build_strategies(
    settings: AppSettings, client: CompletionClient | None
) -> list[DiscoveryStrategy]:
    """Classifier first when a client is available and enabled, regex always last."""

    strategies: list[DiscoveryStrategy] = []
    if client is not None and settings.classifier.enabled:
        strategies.append(
            ClassifierDiscovery(
                client=client,
                char_budget=settings.classifier.char_budget,
                context_window=settings.context_window,
            )
        )
    strategies.append(RegexDiscovery(context_window=settings.context_window))
    return strategies


def discover_placeholders(
    text: str, strategies: Sequence[DiscoveryStrategy]
) -> DiscoveryResult:
    """Run strategies in order and keep the first non-empty result.

    Results are never merged. A strategy whose completion call fails counts as
    empty. When every strategy comes back empty the last result is returned, which
    is a valid zero-placeholder outcome.
    """

    if not strategies:
        raise ValueError("at least one discovery strategy is required")

    result: DiscoveryResult | None = None
    for strategy in strategies:
        try:
            result = strategy.discover(text)
        except UpstreamServiceError as exc:
            logger.warning("discovery strategy %s failed: %s", strategy.name, exc)
            continue
        if result.placeholders:
            return result
        logger.info("discovery strategy %s found no placeholders", strategy.name)

    if result is None:
        return DiscoveryResult(source="fallback")
    return result
