"""Prompt Chain — FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, the uniform error
envelope, and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Chains and versions** live in SQLite behind
  :class:`~promptchain.core.chain_store.ChainStore`.  The schema is created
  on demand by the first request that needs it.
- **Image generation** compiles the prompt with
  :func:`~promptchain.core.request_compiler.compile_request`, sends it
  through :class:`~promptchain.core.provider_client.ProviderClient` and
  decodes the archive with
  :func:`~promptchain.core.response_decoder.decode_response`.
- **Authorization** is an application-wide dependency: guarded requests
  without the right ``X-Master-Key`` are rejected before any store or
  provider access.
- **Errors** are always ``{"error": message}`` with the status carrying the
  kind.

Endpoints
---------
========  ================================  ===================================
Method    Path                              Purpose
========  ================================  ===================================
GET       ``/api/chains``                   Chains with their latest version
POST      ``/api/chains``                   Create a chain (+ seed version)
PUT       ``/api/chains/{id}``              Partial metadata update (auth)
DELETE    ``/api/chains/{id}``              Delete a chain (auth)
GET       ``/api/chains/{id}/versions``     All versions of a chain
POST      ``/api/chains/{id}/versions``     Append a version
POST      ``/api/chains/{id}/generate``     Generate from a stored version
GET       ``/api/artists``                  List artists
POST      ``/api/artists``                  Upsert an artist (auth)
DELETE    ``/api/artists/{id}``             Delete an artist (auth)
GET       ``/api/inspirations``             List inspirations
POST      ``/api/inspirations``             Upsert an inspiration (auth)
DELETE    ``/api/inspirations/{id}``        Delete an inspiration (auth)
POST      ``/api/generate``                 Proxy a generation, return the zip
POST      ``/api/verify-key``               Check a master key
========  ================================  ===================================

Usage
-----
CLI (installed entry point)::

    promptchain

Direct invocation::

    python -m promptchain.api.main
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from promptchain import __version__
from promptchain.api.auth import key_matches
from promptchain.api.dependencies import (
    enforce_master_key,
    get_provider,
    get_settings,
    get_store,
)
from promptchain.api.models import (
    ArtistRequest,
    ChainGenerateRequest,
    CreateChainRequest,
    CreateVersionRequest,
    GenerateRequest,
    InspirationRequest,
    UpdateChainRequest,
    VerifyKeyRequest,
)
from promptchain.api.prompt_builder import build_prompt
from promptchain.core.chain_store import ChainStore
from promptchain.core.config import PromptChainConfig, config
from promptchain.core.errors import AuthError, ChainNotFoundError, PromptChainError
from promptchain.core.models import GenerationParams, PromptModule
from promptchain.core.provider_client import ProviderClient
from promptchain.core.request_compiler import compile_request

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Application lifecycle — provider client setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared provider client on startup and close it on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    app.state.provider = ProviderClient.from_config(config)
    logger.info(f"Provider client ready for {config.provider_url}")

    yield

    await app.state.provider.aclose()
    app.state.provider = None


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Prompt Chain",
    description="Versioned text-to-image prompt chains with a provider proxy.",
    version=__version__,
    lifespan=lifespan,
    dependencies=[Depends(enforce_master_key)],
)

# Every response, errors included, carries permissive cross-origin headers.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "HEAD", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Master-Key"],
)


# ---------------------------------------------------------------------------
# Error envelope.
# ---------------------------------------------------------------------------


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@app.exception_handler(PromptChainError)
async def handle_prompt_chain_error(request: Request, exc: PromptChainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error(exc.message, exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(str(exc.detail), exc.status_code)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"Invalid request: {location}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return _error(message, 400)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    # Runs outside CORSMiddleware, so the header is set here.
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    response = _error(str(exc) or "Internal Server Error", 500)
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


# ---------------------------------------------------------------------------
# Chains.
# ---------------------------------------------------------------------------


@app.get("/api/chains")
async def list_chains(store: ChainStore = Depends(get_store)) -> list[dict]:
    """Return all chains, most recently updated first, each with ``latestVersion``."""
    return store.list_chains()


@app.post("/api/chains")
async def create_chain(req: CreateChainRequest, store: ChainStore = Depends(get_store)) -> dict:
    """Create a chain and its seed version 1.

    Returns:
        Dictionary with the new chain's ``id``.
    """
    chain_id = store.create_chain(req.name, req.description)
    return {"id": chain_id}


@app.put("/api/chains/{chain_id}")
async def update_chain(
    chain_id: str,
    req: UpdateChainRequest,
    store: ChainStore = Depends(get_store),
) -> dict:
    """Apply the fields present in the body to a chain's metadata."""
    store.update_chain_meta(chain_id, req.present_fields())
    return {"success": True}


@app.delete("/api/chains/{chain_id}")
async def delete_chain(chain_id: str, store: ChainStore = Depends(get_store)) -> dict:
    """Delete a chain and, by cascade, all of its versions."""
    store.delete_chain(chain_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Versions.
# ---------------------------------------------------------------------------


@app.get("/api/chains/{chain_id}/versions")
async def list_versions(chain_id: str, store: ChainStore = Depends(get_store)) -> list[dict]:
    """Return every version of a chain, oldest first."""
    return store.list_versions(chain_id)


@app.post("/api/chains/{chain_id}/versions")
async def create_version(
    chain_id: str,
    req: CreateVersionRequest,
    store: ChainStore = Depends(get_store),
) -> dict:
    """Append a version to a chain.

    Returns:
        Dictionary with the new version's ``id`` and ``version`` number.

    Raises:
        ChainNotFoundError: 404 if the chain does not exist.
    """
    return store.create_version(
        chain_id,
        req.base_prompt,
        req.negative_prompt,
        req.stored_modules(),
        req.stored_params(),
    )


@app.post("/api/chains/{chain_id}/generate")
async def generate_from_chain(
    chain_id: str,
    req: ChainGenerateRequest,
    request: Request,
    store: ChainStore = Depends(get_store),
    provider: ProviderClient = Depends(get_provider),
) -> dict:
    """Generate an image from a stored version of a chain.

    The version's base prompt and active modules are composed into the
    positive prompt, the caller's ``params`` overrides are merged over the
    stored parameters, and the result is compiled and sent to the provider.

    Returns:
        Dictionary with ``image`` (a base64 data URL), the resolved ``seed``
        and the ``version`` number used.

    Raises:
        ChainNotFoundError: 404 if the chain or version does not exist.
    """
    version = store.get_version(chain_id, req.version)
    if version is None:
        wanted = "latest" if req.version is None else req.version
        raise ChainNotFoundError(f"Chain {chain_id} has no version {wanted}")

    try:
        modules = [PromptModule.model_validate(m) for m in version["modules"]]
        params = GenerationParams.model_validate({**version["params"], **req.params})
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e

    prompt = build_prompt(version["basePrompt"] or "", modules, req.subject)
    result = await provider.generate_image(
        prompt,
        version["negativePrompt"] or "",
        params,
        api_key=_bearer_token(request),
    )

    encoded = base64.b64encode(result.image_bytes).decode("ascii")
    return {
        "image": f"data:{result.media_type};base64,{encoded}",
        "seed": result.seed,
        "version": version["version"],
    }


# ---------------------------------------------------------------------------
# Artists.
# ---------------------------------------------------------------------------


@app.get("/api/artists")
async def list_artists(store: ChainStore = Depends(get_store)) -> list[dict]:
    return store.list_artists()


@app.post("/api/artists")
async def upsert_artist(req: ArtistRequest, store: ChainStore = Depends(get_store)) -> dict:
    artist_id = store.upsert_artist(req.id, req.name, req.image_url)
    return {"success": True, "id": artist_id}


@app.delete("/api/artists/{artist_id}")
async def delete_artist(artist_id: str, store: ChainStore = Depends(get_store)) -> dict:
    store.delete_artist(artist_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Inspirations.
# ---------------------------------------------------------------------------


@app.get("/api/inspirations")
async def list_inspirations(store: ChainStore = Depends(get_store)) -> list[dict]:
    return store.list_inspirations()


@app.post("/api/inspirations")
async def upsert_inspiration(
    req: InspirationRequest,
    store: ChainStore = Depends(get_store),
) -> dict:
    inspiration_id = store.upsert_inspiration(
        req.id, req.title, req.image_url, req.prompt, req.created_at
    )
    return {"success": True, "id": inspiration_id}


@app.delete("/api/inspirations/{inspiration_id}")
async def delete_inspiration(inspiration_id: str, store: ChainStore = Depends(get_store)) -> dict:
    store.delete_inspiration(inspiration_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Generation proxy and key verification.
# ---------------------------------------------------------------------------


def _bearer_token(request: Request) -> str | None:
    """Return the caller's own provider token from ``Authorization``, if any."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def _is_provider_payload(body: dict[str, Any]) -> bool:
    return isinstance(body.get("input"), str) and isinstance(body.get("parameters"), dict)


@app.post("/api/generate")
async def generate(
    request: Request,
    body: dict[str, Any] = Body(...),
    provider: ProviderClient = Depends(get_provider),
) -> Response:
    """Send a generation request to the provider and return its zip archive.

    The body is either a ready provider payload (``input`` + ``parameters``),
    which is forwarded unchanged, or a :class:`GenerateRequest`
    (``prompt``, ``negativePrompt``, ``params``), which is compiled first.

    Returns:
        The provider's archive as ``application/zip``.

    Raises:
        ProviderError: With the provider's own status if it rejects the call.
    """
    if _is_provider_payload(body):
        payload = body
    else:
        try:
            req = GenerateRequest.model_validate(body)
        except ValidationError as e:
            raise RequestValidationError(e.errors()) from e
        payload = compile_request(req.prompt, req.negative_prompt, req.params, model=provider.model)

    archive = await provider.generate(payload, api_key=_bearer_token(request))
    return Response(content=archive, media_type="application/zip")


@app.post("/api/verify-key")
async def verify_key(
    req: VerifyKeyRequest,
    settings: PromptChainConfig = Depends(get_settings),
) -> dict:
    """Check a candidate master key.

    Raises:
        AuthError: 401 if the key does not match.
    """
    if key_matches(req.key, settings.master_key):
        return {"success": True}
    raise AuthError("Invalid Key")


# ---------------------------------------------------------------------------
# Optional frontend bundle.  Mounted last so API routes take precedence.
# ---------------------------------------------------------------------------
if config.static_dir is not None and config.static_dir.is_dir():
    app.mount("/", StaticFiles(directory=str(config.static_dir), html=True), name="static")


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Configure logging and launch the uvicorn ASGI server.

    Host, port and log level come from
    :data:`~promptchain.core.config.config` (``PROMPTCHAIN_SERVER_HOST``,
    ``PROMPTCHAIN_SERVER_PORT``, ``PROMPTCHAIN_LOG_LEVEL``).

    This function is registered as the ``promptchain`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(
        "promptchain.api.main:app",
        host=config.server_host,
        port=config.server_port,
        log_level=config.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
