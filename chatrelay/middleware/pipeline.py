# -*- coding: utf-8 -*-

# ChatRelay Gateway
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Request normalization pipeline orchestrator.

Single entry point called by the chat completions route before the upstream
request is sent.

Execution order matters:
  1. ToolIdSanitizer      - Must run before repair (repair keys on IDs)
  2. ToolPairingValidator - Reorders responses, adds placeholders, drops orphans
  3. ModelTranslator      - Must run before budget resolution
  4. Capability lookup    - Profile and budget for the translated model
  5. ContextTruncation    - Only when the estimate exceeds the budget
  6. max_tokens fill      - From the profile's output limit, when known

The inbound payload is never modified; a new payload dict is returned with
`model`, `messages` and (possibly) `max_tokens` replaced.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from chatrelay.config import (
    CONTEXT_TRUNCATION_ENABLED,
    MODEL_TRANSLATION_ENABLED,
    TOOL_ID_SANITIZER_ENABLED,
    TOOL_SEQUENCE_REPAIR_ENABLED,
)
from chatrelay.converters_core import messages_from_openai, messages_to_openai
from chatrelay.middleware.context_truncation import TruncationResult, fit_to_budget
from chatrelay.middleware.tool_id_sanitizer import (
    IdFactory,
    generate_fallback_tool_id,
    sanitize_tool_ids,
)
from chatrelay.middleware.tool_pairing_validator import (
    SequenceRepairResult,
    repair_tool_call_sequence,
)
from chatrelay.model_capabilities import ModelCapabilityTable, ModelProfile
from chatrelay.model_resolver import ModelNameTranslator
from chatrelay.token_estimator import needs_truncation


@dataclass(frozen=True)
class NormalizedRequest:
    """
    Outcome of the normalization pipeline for one request.

    Attributes:
        payload: Outbound payload for the upstream
        model: Translated model name
        profile: Resolved capabilities of the translated model
        budget: Prompt token budget used for fitting
        repair: Tool sequence repair counters (None if repair is disabled)
        truncation: Fitting result (None if fitting was not needed)
    """

    payload: Dict[str, Any]
    model: str
    profile: ModelProfile
    budget: int
    repair: Optional[SequenceRepairResult] = None
    truncation: Optional[TruncationResult] = None


def normalize_chat_request(
    payload: Dict[str, Any],
    capability_table: ModelCapabilityTable,
    translator: Optional[ModelNameTranslator] = None,
    id_factory: IdFactory = generate_fallback_tool_id,
    target_tokens: Optional[int] = None,
    enable_id_sanitizer: bool = TOOL_ID_SANITIZER_ENABLED,
    enable_sequence_repair: bool = TOOL_SEQUENCE_REPAIR_ENABLED,
    enable_model_translation: bool = MODEL_TRANSLATION_ENABLED,
    enable_truncation: bool = CONTEXT_TRUNCATION_ENABLED,
) -> NormalizedRequest:
    """
    Run the full request normalization pipeline.

    Each stage is independently toggleable. The pipeline runs in a fixed
    order that ensures correctness (IDs before repair, translation before
    budget lookup).

    Args:
        payload: Inbound chat completions payload (not modified)
        capability_table: Model capability lookup
        translator: Model name translator; defaults to the built-in rules
                    with `capability_table.is_known` as servable check
        id_factory: Source of synthesized tool call IDs
        target_tokens: Explicit budget, overrides the profile-derived one
        enable_id_sanitizer: Enable tool call ID sanitization
        enable_sequence_repair: Enable tool call sequence repair
        enable_model_translation: Enable model name translation
        enable_truncation: Enable context budget fitting

    Returns:
        NormalizedRequest with the outbound payload
    """
    if translator is None:
        translator = ModelNameTranslator(is_servable=capability_table.is_known)

    messages = messages_from_openai(payload.get("messages") or [])
    msg_count = len(messages)

    # 1. Sanitize tool call IDs
    if enable_id_sanitizer:
        messages = sanitize_tool_ids(messages, id_factory=id_factory)

    # 2. Repair tool call / tool response ordering
    repair = None
    if enable_sequence_repair:
        repair = repair_tool_call_sequence(messages)
        messages = repair.messages

    # 3. Translate model name
    requested_model = payload.get("model") or ""
    model = translator.translate(requested_model) if enable_model_translation else requested_model
    if model != requested_model:
        logger.info(f"[Pipeline] Model translated: '{requested_model}' -> '{model}'")

    # 4. Resolve profile and budget for the translated name
    profile = capability_table.resolve(model)
    budget = target_tokens if target_tokens is not None else capability_table.budget_for(model)

    # 5. Fit into the budget
    truncation = None
    if enable_truncation and needs_truncation(messages, budget):
        truncation = fit_to_budget(messages, budget, model=model)
        messages = truncation.messages

    # 6. Build outbound payload
    outbound = dict(payload)
    outbound["model"] = model
    outbound["messages"] = messages_to_openai(messages)

    if outbound.get("max_tokens") is None and profile.max_output_tokens is not None:
        # Prompt budget + max_tokens must fit the context window
        output_reserve = profile.context_window_tokens - budget
        if output_reserve > 0:
            max_tokens = min(profile.max_output_tokens, output_reserve)
            outbound["max_tokens"] = max_tokens
            logger.debug(
                f"[Pipeline] Set max_tokens to: {max_tokens} "
                f"(model limit {profile.max_output_tokens}, reserve {output_reserve})"
            )

    if len(messages) != msg_count:
        logger.info(
            "[Pipeline] Message count changed: {} -> {}",
            msg_count,
            len(messages),
        )

    return NormalizedRequest(
        payload=outbound,
        model=model,
        profile=profile,
        budget=budget,
        repair=repair,
        truncation=truncation,
    )
