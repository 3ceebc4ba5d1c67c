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
Model name translation.

Clients send model names the upstream does not accept verbatim:
- Dated releases: claude-sonnet-4-20250514, gpt-4o-2024-08-06
- Completion-only variants: gpt-5.2-codex (not servable on /chat/completions)
- Client tags: claude-opus-4[1m] (Claude Code context-size marker)

Rules are data. The first rule whose pattern matches (and whose base name is
servable, when the rule requires it) decides one step; steps repeat until the
name stops changing, so claude-sonnet-4-20250514[1m] ends as claude-sonnet-4.
Unmatched names pass through unchanged.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional, Pattern, Tuple

from loguru import logger


@dataclass(frozen=True)
class TranslationRule:
    """
    One model-name rewrite.

    Attributes:
        name: Rule name for logs
        pattern: Regex with a named group "base"
        requires_servable_base: Only apply when the base name is a known model
    """

    name: str
    pattern: Pattern[str]
    requires_servable_base: bool = False

    def apply(self, model: str) -> Optional[str]:
        match = self.pattern.match(model)
        if not match:
            return None
        return match.group("base")


DEFAULT_TRANSLATION_RULES: Tuple[TranslationRule, ...] = (
    # claude-sonnet-4-20250514 -> claude-sonnet-4
    TranslationRule("strip-date-suffix", re.compile(r"^(?P<base>.+?)-\d{8}$")),
    # gpt-4o-2024-08-06 -> gpt-4o
    TranslationRule(
        "strip-iso-date-suffix", re.compile(r"^(?P<base>.+?)-\d{4}-\d{2}-\d{2}$")
    ),
    # claude-3-5-sonnet-latest -> claude-3-5-sonnet
    TranslationRule("strip-latest-suffix", re.compile(r"^(?P<base>.+?)-latest$")),
    # gpt-5.2-codex -> gpt-5.2, gpt-5.1-codex-mini -> gpt-5.1
    TranslationRule(
        "completion-only-sibling",
        re.compile(r"^(?P<base>gpt-\d[\w.]*?)-codex(?:-(?:mini|max))?$"),
    ),
    # claude-opus-4[1m] -> claude-opus-4
    TranslationRule(
        "strip-client-tag",
        re.compile(r"^(?P<base>[^\[\]]+?)\s*\[[^\]]*\]$"),
        requires_servable_base=True,
    ),
)


def translate_model_name(
    model: str,
    rules: Tuple[TranslationRule, ...] = DEFAULT_TRANSLATION_RULES,
    is_servable: Optional[Callable[[str], bool]] = None,
) -> str:
    """
    Translate a client model name to the name the upstream accepts.

    Args:
        model: Model name from the client request
        rules: Ordered rule table, first match wins; applied again until
               the name stops changing
        is_servable: Predicate for rules with requires_servable_base;
                     when None such rules never apply

    Returns:
        Translated model name, or `model` unchanged

    Example:
        >>> translate_model_name("claude-sonnet-4-20250514")
        'claude-sonnet-4'
        >>> translate_model_name("gpt-5.2-codex")
        'gpt-5.2'
        >>> translate_model_name("gpt-4o-2024-08-06-latest")
        'gpt-4o'
        >>> translate_model_name("my-custom-model")
        'my-custom-model'
    """
    # Each step returns a substring of its input, so this terminates
    translated = _translate_once(model, rules, is_servable)
    while translated != model:
        model = translated
        translated = _translate_once(model, rules, is_servable)
    return translated


def _translate_once(
    model: str,
    rules: Tuple[TranslationRule, ...],
    is_servable: Optional[Callable[[str], bool]],
) -> str:
    if not model:
        return model

    for rule in rules:
        base = rule.apply(model)
        if not base:
            continue
        if rule.requires_servable_base and not _base_is_servable(base, rules, is_servable):
            continue
        return base

    return model


def _base_is_servable(
    base: str,
    rules: Tuple[TranslationRule, ...],
    is_servable: Optional[Callable[[str], bool]],
) -> bool:
    """A base counts as servable if it, or what it translates to, is servable."""
    if is_servable is None:
        return False
    return is_servable(base) or is_servable(translate_model_name(base, rules, is_servable))


class ModelNameTranslator:
    """
    Translator bound to a rule table and a servable-model predicate.

    Example:
        >>> translator = ModelNameTranslator(is_servable=lambda m: m == "claude-opus-4")
        >>> translator.translate("claude-opus-4[1m]")
        'claude-opus-4'
    """

    def __init__(
        self,
        rules: Tuple[TranslationRule, ...] = DEFAULT_TRANSLATION_RULES,
        is_servable: Optional[Callable[[str], bool]] = None,
    ):
        self._rules = tuple(rules)
        self._is_servable = is_servable

    def translate(self, model: str) -> str:
        translated = translate_model_name(model, self._rules, self._is_servable)
        if translated != model:
            logger.debug(f"[ModelTranslator] '{model}' -> '{translated}'")
        return translated
