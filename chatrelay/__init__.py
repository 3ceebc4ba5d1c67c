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
ChatRelay Gateway - OpenAI-compatible relay for strict upstream providers.

Modules:
    - config: Configuration and constants
    - converters_core: Unified message model and OpenAI conversion
    - token_estimator: Approximate per-message token cost
    - tokenizer: tiktoken-based counts (observability only)
    - model_capabilities: Context window / output limit lookup
    - model_resolver: Model name translation rules
    - middleware: Request normalization pipeline
    - http_client: Upstream HTTP client
    - streaming_openai: Composed / streamed response relay
    - routes_openai: FastAPI routes
    - upstream_errors: Upstream error enhancement
"""

# Version is imported from config.py - the single source of truth
from chatrelay.config import APP_VERSION as __version__

__author__ = "Jwadow"

from chatrelay.model_capabilities import ModelCapabilityTable, ModelProfile
from chatrelay.model_resolver import ModelNameTranslator, translate_model_name
from chatrelay.middleware import NormalizedRequest, normalize_chat_request
from chatrelay.http_client import UpstreamHttpClient
from chatrelay.routes_openai import router

__all__ = [
    "__version__",
    "ModelCapabilityTable",
    "ModelProfile",
    "ModelNameTranslator",
    "translate_model_name",
    "NormalizedRequest",
    "normalize_chat_request",
    "UpstreamHttpClient",
    "router",
]
