# -*- coding: utf-8 -*-

# ChatRelay Gateway
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Model capability table.

Maps model identifiers to context window sizes and (when known) output
limits. The table is built once at startup and never modified afterwards;
it is passed explicitly to the pipeline so tests can inject their own.

Resolution order for the context window:
1. Exact match
2. Longest prefix match
3. Family heuristics (claude, gemini, gpt-4, gpt-5, o-series)
4. Default window
"""

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from chatrelay.config import (
    DEFAULT_CONTEXT_WINDOW,
    MIN_OUTPUT_RESERVE_TOKENS,
    MODEL_CONTEXT_LIMITS,
    MODEL_OUTPUT_LIMITS,
    OUTPUT_RESERVE_RATIO,
)


@dataclass(frozen=True)
class ModelProfile:
    """
    Resolved capabilities of one model.

    Attributes:
        identifier: Model name the profile was resolved for
        context_window_tokens: Maximum prompt + completion tokens
        max_output_tokens: Maximum completion tokens, None if unknown
    """

    identifier: str
    context_window_tokens: int
    max_output_tokens: Optional[int] = None


@dataclass(frozen=True)
class FamilyRule:
    """Fallback window for a model family: `marker` found via `match` ("contains" or "prefix")."""

    marker: str
    context_window_tokens: int
    match: str = "contains"

    def matches(self, model: str) -> bool:
        if self.match == "prefix":
            return model.startswith(self.marker)
        return self.marker in model


DEFAULT_FAMILY_RULES: Tuple[FamilyRule, ...] = (
    FamilyRule("claude", 200000),
    FamilyRule("gemini", 1000000),
    FamilyRule("gpt-4", 128000),
    FamilyRule("gpt-5", 128000),
    FamilyRule("o1", 200000, match="prefix"),
    FamilyRule("o3", 200000, match="prefix"),
    FamilyRule("o4", 200000, match="prefix"),
)


def compute_budget(
    context_window_tokens: int,
    reserve_ratio: float = OUTPUT_RESERVE_RATIO,
    min_reserve: int = MIN_OUTPUT_RESERVE_TOKENS,
) -> int:
    """
    Compute the prompt token budget for a context window.

    A share of the window (at least `min_reserve` tokens) is kept for output.

    Example:
        >>> compute_budget(200000)
        170000
        >>> compute_budget(8192)
        4096
    """
    reserved = max(math.floor(context_window_tokens * reserve_ratio), min_reserve)
    return context_window_tokens - reserved


def _longest_prefix_match(table: Mapping[str, int], model: str) -> Optional[int]:
    best_key = None
    for key in table:
        if model.startswith(key) and (best_key is None or len(key) > len(best_key)):
            best_key = key
    return table[best_key] if best_key is not None else None


class ModelCapabilityTable:
    """
    Immutable lookup of model capabilities.

    Example:
        >>> table = ModelCapabilityTable({"claude-sonnet-4": 200000})
        >>> table.resolve("claude-sonnet-4").context_window_tokens
        200000
        >>> table.budget_for("unknown-model")
        108800
    """

    def __init__(
        self,
        context_limits: Optional[Mapping[str, int]] = None,
        output_limits: Optional[Mapping[str, int]] = None,
        default_context_window: int = DEFAULT_CONTEXT_WINDOW,
        family_rules: Tuple[FamilyRule, ...] = DEFAULT_FAMILY_RULES,
    ):
        """
        Args:
            context_limits: Model ID (or prefix) -> context window tokens
            output_limits: Model ID (or prefix) -> max output tokens
            default_context_window: Window for models matching nothing
            family_rules: Heuristics applied after exact/prefix lookup fails
        """
        self._context_limits = MappingProxyType(
            dict(MODEL_CONTEXT_LIMITS if context_limits is None else context_limits)
        )
        self._output_limits = MappingProxyType(
            dict(MODEL_OUTPUT_LIMITS if output_limits is None else output_limits)
        )
        self._default_context_window = default_context_window
        self._family_rules = tuple(family_rules)

    @property
    def model_ids(self) -> Tuple[str, ...]:
        """Model IDs with an explicit context window entry."""
        return tuple(self._context_limits)

    def is_known(self, model: str) -> bool:
        """True if the model matches a table entry exactly or by prefix."""
        if model in self._context_limits:
            return True
        return _longest_prefix_match(self._context_limits, model) is not None

    def get_context_window(self, model: str) -> int:
        """Context window for a model, following the documented resolution order."""
        if model in self._context_limits:
            return self._context_limits[model]

        prefix_limit = _longest_prefix_match(self._context_limits, model)
        if prefix_limit is not None:
            return prefix_limit

        for rule in self._family_rules:
            if rule.matches(model):
                return rule.context_window_tokens

        return self._default_context_window

    def get_max_output_tokens(self, model: str) -> Optional[int]:
        """Output limit for a model, or None if no entry matches."""
        if model in self._output_limits:
            return self._output_limits[model]
        return _longest_prefix_match(self._output_limits, model)

    def resolve(self, model: str) -> ModelProfile:
        """Build the ModelProfile for a (translated) model name."""
        return ModelProfile(
            identifier=model,
            context_window_tokens=self.get_context_window(model),
            max_output_tokens=self.get_max_output_tokens(model),
        )

    def budget_for(self, model: str) -> int:
        """Prompt token budget for a model."""
        return compute_budget(self.get_context_window(model))
