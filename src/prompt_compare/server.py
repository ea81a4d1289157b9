"""JSON proxy server for provider calls.

Exposes one endpoint per provider so a browser client can reach the
vendors without holding their API keys, plus comparison and conversation
endpoints backed by a process-wide ``ComparisonSession``.

Routes::

    POST /api/anthropic/messages
    POST /api/openai/chat/completions
    POST /api/gemini/generate
    POST /api/compare
    POST /api/conversations/{instance_id}/reply
    GET  /api/conversations/{instance_id}
    GET  /api/providers
    GET  /health

Failures always answer ``{"error": "<message>"}``. The status comes from the
error's ``status_code``: 400 for bad requests, 500 for missing keys and
transport faults, 502 for unusable upstream bodies, and the upstream's own
status when the provider rejects the call.

Typical usage::

    from prompt_compare.server import run_server

    run_server(port=3001)
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from prompt_compare.config import Config, load_config
from prompt_compare.credentials import resolve_credential
from prompt_compare.dispatcher import Dispatcher
from prompt_compare.errors import PromptCompareError
from prompt_compare.models import ModelConfiguration
from prompt_compare.orchestrator import ComparisonSession
from prompt_compare.providers import Provider
from prompt_compare.registry import PROVIDERS
from prompt_compare.types import GenerationOptions, ProviderId

logger = logging.getLogger(__name__)

PROMPT_REQUIRED = "Prompt is required."


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class ProviderBody(BaseModel):
    """Body accepted by the per-provider endpoints.

    ``prompt`` is typed loosely so a missing or non-string prompt reaches
    the handler and gets the proxy's own 400 message.
    """

    model_config = ConfigDict(extra="ignore")

    prompt: Any = None
    model: str | None = None
    apiKey: str | None = None
    maxTokens: int | None = None
    maxOutputTokens: int | None = None
    temperature: float | None = None


class CompareBody(BaseModel):
    """Body for ``POST /api/compare``."""

    model_config = ConfigDict(extra="ignore")

    prompt: Any = None
    models: list[dict[str, Any]] | None = None
    maxTokens: int | None = None
    temperature: float | None = None


class ReplyBody(BaseModel):
    """Body for ``POST /api/conversations/{instance_id}/reply``."""

    model_config = ConfigDict(extra="ignore")

    text: Any = None
    model: dict[str, Any] | None = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _valid_prompt(prompt: Any) -> bool:
    return isinstance(prompt, str) and bool(prompt)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    config: Config | None = None,
    *,
    providers: Mapping[str, Provider] | None = None,
    environ: Mapping[str, str] | None = None,
) -> FastAPI:
    """Build the proxy application.

    The dispatcher (and with it every adapter's connection pool) lives for
    the lifetime of the app. Conversation history is held in memory and
    shared by every client.

    Args:
        config: Application configuration. Loaded from disk when omitted.
        providers: Adapters keyed by provider id, passed to the dispatcher.
        environ: Environment used for key lookup. Defaults to ``os.environ``.

    Returns:
        Configured FastAPI application.
    """
    cfg = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        _log_key_presence(cfg, environ)
        async with Dispatcher(cfg, providers=providers, environ=environ) as dispatcher:
            app.state.dispatcher = dispatcher
            app.state.session = ComparisonSession(dispatcher)
            yield

    app = FastAPI(title="prompt-compare proxy", lifespan=lifespan)
    app.state.config = cfg

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "%s %s %d %.0fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(f"Invalid request body: {exc.errors()}", 400)

    @app.exception_handler(PromptCompareError)
    async def prompt_compare_error(request: Request, exc: PromptCompareError) -> JSONResponse:
        return _error(str(exc), exc.status_code)

    # --- Per-provider proxies ---

    async def _proxy(
        request: Request,
        provider_id: str,
        body: ProviderBody,
        max_tokens: int | None,
    ) -> JSONResponse:
        if not _valid_prompt(body.prompt):
            return _error(PROMPT_REQUIRED, 400)

        credential = resolve_credential(
            provider_id,
            body.apiKey,
            allow_override=cfg.allow_client_keys,
            environ=cfg.credential_environ(environ),
        )
        provider = request.app.state.dispatcher.provider_for(provider_id)
        options = GenerationOptions(max_tokens=max_tokens, temperature=body.temperature)
        content, model = await provider.generate(
            body.prompt, credential=credential, model=body.model or None, options=options
        )
        return JSONResponse({"content": content, "model": model})

    @app.post("/api/anthropic/messages")
    async def anthropic_messages(request: Request, body: ProviderBody) -> JSONResponse:
        """Proxy one prompt to Anthropic's Messages API."""
        return await _proxy(request, ProviderId.ANTHROPIC, body, body.maxTokens)

    @app.post("/api/openai/chat/completions")
    async def openai_chat(request: Request, body: ProviderBody) -> JSONResponse:
        """Proxy one prompt to OpenAI's Chat Completions API."""
        return await _proxy(request, ProviderId.OPENAI, body, body.maxTokens)

    @app.post("/api/gemini/generate")
    async def gemini_generate(request: Request, body: ProviderBody) -> JSONResponse:
        """Proxy one prompt to Gemini's generateContent API."""
        return await _proxy(request, ProviderId.GEMINI, body, body.maxOutputTokens)

    # --- Comparison and conversations ---

    @app.post("/api/compare")
    async def compare(request: Request, body: CompareBody) -> JSONResponse:
        """Run one dispatch round and return every outcome."""
        if not _valid_prompt(body.prompt):
            return _error(PROMPT_REQUIRED, 400)

        if body.models is None:
            configurations = cfg.active_models()
        else:
            try:
                configurations = [ModelConfiguration.from_dict(m) for m in body.models]
            except ValueError as exc:
                return _error(str(exc), 400)

        session: ComparisonSession = request.app.state.session
        options = GenerationOptions(max_tokens=body.maxTokens, temperature=body.temperature)
        try:
            outcomes = await session.submit(body.prompt, configurations, options=options)
        except ValueError as exc:
            return _error(str(exc), 400)
        return JSONResponse(
            {"results": {instance_id: o.to_dict() for instance_id, o in outcomes.items()}}
        )

    @app.post("/api/conversations/{instance_id}/reply")
    async def reply(request: Request, instance_id: str, body: ReplyBody) -> JSONResponse:
        """Send a follow-up message to one model instance."""
        if body.model is not None:
            try:
                configuration = ModelConfiguration.from_dict(
                    {**body.model, "instance_id": instance_id}
                )
            except ValueError as exc:
                return _error(str(exc), 400)
        else:
            try:
                configuration = cfg.get_model(instance_id)
            except KeyError as exc:
                return _error(exc.args[0], 404)

        if not isinstance(body.text, str):
            return _error("Reply text is required.", 400)

        session: ComparisonSession = request.app.state.session
        try:
            outcome = await session.follow_up(configuration, body.text)
        except ValueError as exc:
            return _error(str(exc), 400)
        return JSONResponse(
            {
                "result": outcome.to_dict(),
                "history": [turn.to_dict() for turn in session.history(instance_id)],
            }
        )

    @app.get("/api/conversations/{instance_id}")
    async def conversation(request: Request, instance_id: str) -> dict[str, Any]:
        """Return one instance's conversation history."""
        session: ComparisonSession = request.app.state.session
        return {
            "instance_id": instance_id,
            "history": [turn.to_dict() for turn in session.history(instance_id)],
        }

    # --- Metadata ---

    @app.get("/api/providers")
    async def list_providers() -> dict[str, Any]:
        """List registered providers (never their keys)."""
        return {"providers": [descriptor.to_dict() for descriptor in PROVIDERS.values()]}

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness check."""
        return {"status": "ok"}

    return app


def _log_key_presence(config: Config, environ: Mapping[str, str] | None) -> None:
    """Log which provider keys the server can see (presence and length only)."""
    env = config.credential_environ(environ)
    for descriptor in PROVIDERS.values():
        value = env.get(descriptor.credential_env, "")
        if value:
            logger.info(
                "%s: %s present (length %d)",
                descriptor.display_name,
                descriptor.credential_env,
                len(value),
            )
        else:
            logger.warning(
                "%s: %s not set; calls will fail until a key is configured",
                descriptor.display_name,
                descriptor.credential_env,
            )
    if config.allow_client_keys:
        logger.info("Client-supplied API keys are allowed")


def run_server(
    host: str | None = None,
    port: int | None = None,
    config: Config | None = None,
) -> None:
    """Start the proxy under uvicorn.

    Args:
        host: Bind address. Defaults to ``config.host``.
        port: Port. Defaults to ``config.port``.
        config: Application configuration. Loaded from disk when omitted.
    """
    import uvicorn

    cfg = config or load_config()
    uvicorn.run(create_app(cfg), host=host or cfg.host, port=port or cfg.port)
