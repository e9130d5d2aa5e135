"""FastAPI application — the agentlink node daemon."""

import logging
from contextlib import asynccontextmanager
from typing import Literal, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .config import NodeConfig
from .errors import (
    AlreadyRespondedError,
    AmbiguousTaskError,
    InboxFullError,
    InitializationError,
    NodeError,
    NotReadyError,
    TransportError,
    UnknownPeerError,
    UnknownTaskError,
)
from .models import AgentCard, AgentListing, ReceivedMessage, SentTask, Task
from .node import A2ANode
from .transport.base import PubSubTransport

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotReadyError: 503,
    InitializationError: 503,
    UnknownPeerError: 404,
    UnknownTaskError: 404,
    AlreadyRespondedError: 409,
    AmbiguousTaskError: 409,
    InboxFullError: 429,
    TransportError: 502,
}


def status_for(error: NodeError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


class IdentityResponse(BaseModel):
    pubkey: str
    name: str
    encrypted: bool
    state: str


class SendRequest(BaseModel):
    to: str  # recipient public id
    text: str
    intent: Literal["task", "message"] = "task"


class SendResponse(BaseModel):
    status: str = "ok"
    task_id: Optional[str] = None
    msg_id: Optional[str] = None


class RespondRequest(BaseModel):
    text: str
    requester: Optional[str] = None  # needed only when two requesters share a task id


def create_app(config: NodeConfig, transport: Optional[PubSubTransport] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        node = A2ANode(config, transport)
        await node.init()
        app.state.node = node

        # Announce on startup; a missing relay should not stop the daemon.
        try:
            await node.announce()
        except NodeError as e:
            logger.warning(f"Initial announce failed (is nwaku running?): {e}")

        yield

        await node.shutdown()
        logger.info("agentlink daemon stopped.")

    app = FastAPI(title="agentlink", version=__version__, lifespan=lifespan)

    @app.exception_handler(NodeError)
    async def node_error_handler(request: Request, exc: NodeError):
        return JSONResponse(
            status_code=status_for(exc),
            content={"error": {"kind": exc.kind, "message": str(exc)}},
        )

    def node() -> A2ANode:
        return app.state.node

    # --- API Routes ---

    @app.get("/v0/identity")
    async def get_identity() -> IdentityResponse:
        n = node()
        return IdentityResponse(pubkey=n.pubkey(), name=n.config.node_name, encrypted=n.encrypted, state=n.state.value)

    @app.get("/v0/card")
    async def get_card() -> AgentCard:
        return node().agent_card()

    @app.post("/v0/announce")
    async def announce():
        await node().announce()
        return {"status": "ok"}

    @app.get("/v0/agents")
    async def get_agents() -> list[AgentListing]:
        return node().discover()

    @app.post("/v0/send")
    async def send(req: SendRequest) -> SendResponse:
        if req.intent == "message":
            msg_id = await node().send_message(req.to, req.text)
            return SendResponse(msg_id=msg_id)
        sent = await node().send_text(req.to, req.text)
        return SendResponse(task_id=sent.id)

    @app.get("/v0/tasks")
    async def poll_tasks() -> list[Task]:
        return node().poll_tasks()

    @app.post("/v0/tasks/{task_id}/respond")
    async def respond(task_id: str, req: RespondRequest):
        await node().respond(task_id, req.text, req.requester)
        return {"status": "ok", "task_id": task_id}

    @app.get("/v0/results/{task_id}")
    async def get_result(task_id: str) -> SentTask:
        return node().task_result(task_id)

    @app.get("/v0/messages")
    async def get_messages() -> list[ReceivedMessage]:
        return node().messages()

    return app
