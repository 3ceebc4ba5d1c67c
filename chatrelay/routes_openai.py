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
FastAPI routes for the OpenAI-compatible API.

Endpoints:
- GET /                    - Root status
- GET /health              - Health check
- GET /v1/models           - Models with a known context window
- POST /v1/chat/completions - Normalize, forward and relay a chat completion
"""

from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Security
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import APIKeyHeader
from loguru import logger

from chatrelay import config
from chatrelay.approval import await_approval
from chatrelay.middleware import normalize_chat_request
from chatrelay.models_openai import ChatCompletionRequest, ModelList, OpenAIModel
from chatrelay.streaming_openai import is_composed_response, relay_fragments
from chatrelay.tokenizer import log_token_count
from chatrelay.upstream_errors import UpstreamError

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

router = APIRouter()


async def verify_api_key(auth_header: Optional[str] = Security(api_key_header)) -> bool:
    """
    Verify the client's Bearer token against PROXY_API_KEY.

    Args:
        auth_header: Authorization header value

    Returns:
        True if the key is valid

    Raises:
        HTTPException: 401 if the key is missing or invalid
    """
    if not auth_header or auth_header != f"Bearer {config.PROXY_API_KEY}":
        logger.warning("Access attempt with invalid API key.")
        raise HTTPException(status_code=401, detail="Invalid or missing API Key")
    return True


async def close_upstream_stream(fragments) -> None:
    """Close an upstream fragment iterator; safe to call more than once."""
    aclose = getattr(fragments, "aclose", None)
    if aclose is not None:
        await aclose()


@router.get("/")
async def root():
    """Root status endpoint."""
    return {
        "status": "ok",
        "message": f"{config.APP_TITLE} is running",
        "version": config.APP_VERSION,
    }


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": config.APP_VERSION,
    }


@router.get("/v1/models", response_model=ModelList, dependencies=[Depends(verify_api_key)])
async def list_models(request: Request):
    """List models with an explicit capability table entry."""
    table = request.app.state.capability_table
    return ModelList(data=[OpenAIModel(id=model_id) for model_id in table.model_ids])


@router.post("/v1/chat/completions", dependencies=[Depends(verify_api_key)])
async def chat_completions(request: Request, request_data: ChatCompletionRequest):
    """
    Chat completions endpoint.

    Flow:
      1. Rate limit check
      2. Request normalization pipeline
      3. Observability-only token count
      4. Manual approval (if enabled)
      5. Upstream call
      6. Relay: JSON body for composed responses, SSE for fragment sequences
    """
    state = request.app.state
    await state.rate_limiter.check()

    payload = request_data.to_payload()
    logger.info(
        f"Request to /v1/chat/completions (model={request_data.model}, "
        f"stream={request_data.stream}, messages={len(request_data.messages)})"
    )

    normalized = normalize_chat_request(payload, state.capability_table)

    log_token_count(normalized.payload)

    if config.MANUAL_APPROVE:
        await await_approval()

    try:
        result = await state.http_client.create_chat_completion(normalized.payload)
    except UpstreamError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_openai_error())
    except httpx.HTTPError as e:
        logger.error(f"Upstream request failed: {type(e).__name__}: {e}")
        return JSONResponse(
            status_code=502,
            content={
                "error": {
                    "message": f"Upstream request failed: {type(e).__name__}",
                    "type": "upstream_error",
                    "code": 502,
                }
            },
        )

    if is_composed_response(result):
        logger.debug("Non-streaming response relayed")
        return JSONResponse(content=result)

    logger.debug("Streaming response")
    # Releases the upstream response even if streaming never started
    cleanup = BackgroundTasks()
    cleanup.add_task(close_upstream_stream, result)
    return StreamingResponse(
        relay_fragments(result),
        media_type="text/event-stream",
        background=cleanup,
    )
