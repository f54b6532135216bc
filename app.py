"""
branchchat: forkable interactive-fiction chat over HTTP

- Conversation history is a tree of branches owned by a BranchStore and
  persisted through a key-value adapter (JSON files by default).
- Forking copies a prefix of the current branch into a new branch; the
  source branch is never mutated.
- On reply, builds context = system prompt + current branch + new user msg,
  calls the configured model provider and appends the answer.

Run:
  pip install -e .
  export OPENAI_API_KEY="..."
  uvicorn app:app --reload --port 8787
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field

from branchstore import (
    BranchNotFound,
    BranchStore,
    InvalidOperation,
    Message,
    build_context,
    build_graph,
    export_branch_markdown,
)
from config import Settings, load_settings
from providers import (
    BaseProvider,
    InvalidPromptError,
    ProviderError,
    ProviderRouter,
    UnknownProviderError,
    build_router,
)
from providers.base import MAX_PROMPT_CHARS

logger = logging.getLogger("branchchat.app")


# ----------------------------
# Request models
# ----------------------------
class MessagesReq(BaseModel):
    messages: List[Message]


class ForkReq(BaseModel):
    fork_message_id: str
    messages: List[Message]


class SwitchReq(BaseModel):
    branch_id: str


class ReplyReq(BaseModel):
    content: str = Field(min_length=1)
    provider: Optional[str] = None


class ImageReq(BaseModel):
    prompt: str = Field(min_length=1, max_length=MAX_PROMPT_CHARS)
    variations: int = Field(default=1, ge=1, le=4)


def _sse(payload: Any) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


# ----------------------------
# FastAPI
# ----------------------------
def create_app(
    settings: Optional[Settings] = None,
    store: Optional[BranchStore] = None,
    router: Optional[ProviderRouter] = None,
) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    if store is None:
        store = BranchStore(
            settings.make_adapter(),
            namespace=settings.namespace,
            welcome_message=settings.welcome_message,
        )
    router = router or build_router(settings)
    # The store assumes one writer; every store call goes through this lock
    lock = threading.Lock()

    app = FastAPI(title="branchchat")
    app.state.settings = settings
    app.state.store = store
    app.state.router = router

    @app.exception_handler(BranchNotFound)
    async def _branch_not_found(request: Request, exc: BranchNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidOperation)
    async def _invalid_operation(request: Request, exc: InvalidOperation):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(UnknownProviderError)
    async def _unknown_provider(request: Request, exc: UnknownProviderError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(InvalidPromptError)
    async def _invalid_prompt(request: Request, exc: InvalidPromptError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ProviderError)
    async def _provider_error(request: Request, exc: ProviderError):
        logger.error("Provider failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    def _provider(name: Optional[str]) -> BaseProvider:
        if name:
            return router.get_provider(name)
        return router.get_provider_with_fallback(settings.default_provider, settings.fallback_provider)

    def _turn(provider: BaseProvider, content: str):
        """Return (branch, user message, context) for a new user turn."""
        provider.validate_prompt(content)
        with lock:
            branch = store.get_current_branch()
        user = Message(role="user", content=provider.sanitize_prompt(content))
        ctx = build_context(branch, settings.system_prompt)
        ctx.append({"role": "user", "content": user.content})
        return branch, user, ctx

    def _assistant(provider: BaseProvider, text: str) -> Message:
        return Message(role="assistant", content=text, model=f"{provider.name}/{provider.model}")

    # ---- branch store ----
    @app.get("/api/branch/current")
    def api_current_branch():
        with lock:
            return store.get_current_branch()

    @app.put("/api/branch/current/messages")
    def api_save_messages(req: MessagesReq):
        with lock:
            store.save_messages(req.messages)
            return store.get_current_branch()

    @app.post("/api/fork")
    def api_fork(req: ForkReq):
        with lock:
            branch_id = store.create_branch(req.fork_message_id, req.messages)
            return {"branch_id": branch_id, "branch": store.get_branch(branch_id)}

    @app.post("/api/switch")
    def api_switch(req: SwitchReq):
        with lock:
            return store.switch_branch(req.branch_id)

    @app.get("/api/branches")
    def api_branches():
        with lock:
            return store.get_all_branches()

    @app.get("/api/branch/{branch_id}")
    def api_branch(branch_id: str):
        with lock:
            return store.get_branch(branch_id)

    @app.delete("/api/branch/{branch_id}")
    def api_delete_branch(branch_id: str):
        with lock:
            store.delete_branch(branch_id)
            return {"ok": True, "current_branch_id": store.get_current_branch().id}

    @app.delete("/api/conversations")
    def api_clear():
        with lock:
            store.clear_all_conversations()
        return {"ok": True}

    @app.get("/api/graph")
    def api_graph():
        with lock:
            branch = store.get_current_branch()
        return build_graph(branch)

    @app.get("/api/branch/{branch_id}/export")
    def api_export(branch_id: str):
        with lock:
            branch = store.get_branch(branch_id)
        return PlainTextResponse(export_branch_markdown(branch), media_type="text/markdown")

    # ---- model calls ----
    @app.post("/api/reply")
    def api_reply(req: ReplyReq):
        provider = _provider(req.provider)
        branch, user, ctx = _turn(provider, req.content)
        assistant = _assistant(provider, provider.generate_with_history(ctx))

        with lock:
            store.save_messages(branch.messages + [user, assistant], branch_id=branch.id)
            return store.get_branch(branch.id)

    @app.post("/api/chat/stream")
    def api_chat_stream(req: ReplyReq):
        provider = _provider(req.provider)
        branch, user, ctx = _turn(provider, req.content)
        chunks = provider.stream_with_history(ctx)

        def events():
            parts: List[str] = []
            try:
                for chunk in chunks:
                    parts.append(chunk)
                    yield _sse({"text": chunk})
            except ProviderError as e:
                yield _sse({"error": str(e)})
                return

            # Only a completed stream is persisted
            assistant = _assistant(provider, "".join(parts).strip())
            try:
                with lock:
                    store.save_messages(branch.messages + [user, assistant], branch_id=branch.id)
            except BranchNotFound as e:
                yield _sse({"error": str(e)})
                return
            yield _sse("[DONE]")

        return StreamingResponse(
            events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/api/generate/image")
    def api_generate_image(req: ImageReq):
        provider = router.get_best_provider(["image"])
        if "image" not in provider.get_capabilities():
            raise HTTPException(503, "No image-capable provider is configured")
        return {"images": provider.generate_image(req.prompt, n=req.variations)}

    @app.get("/api/providers")
    def api_providers():
        out: List[Dict[str, Any]] = []
        for name in router.names:
            caps = router.capabilities(name)
            out.append({
                "name": name,
                "available": caps is not None,
                "default": name == router.default,
                "capabilities": caps or [],
            })
        return out

    return app


app = create_app()
