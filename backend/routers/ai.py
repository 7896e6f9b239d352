"""
Nova AI Router
AI orchestration endpoints for one project.

POST /api/ai/{project_id}/stream   - SSE progress stream ending in done/error
POST /api/ai/{project_id}/execute  - Same pipeline, single JSON response
GET  /api/ai/{project_id}/history  - Recent action_history rows

Identity comes from the X-User-Id header set by the upstream auth layer.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import runtime_config
from errors import ExternalServiceError, ValidationError, error_response, success_response
from routers.ai_orchestration import (
    CollectingSink,
    EventChannel,
    OrchestrationRequest,
    OrchestrationResult,
    OrchestratorState,
)
from routers.ai_streaming import sse_response
from tools.registry import ToolContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

# Strong references to running stream tasks
_stream_tasks: Set[asyncio.Task] = set()


class OrchestrateBody(BaseModel):
    prompt: str
    sessionId: Optional[str] = None


def require_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def require_prompt(body: OrchestrateBody) -> str:
    prompt = body.prompt.strip()
    if not prompt:
        raise ValidationError("Prompt must not be blank", parameter="prompt")
    return prompt


def get_orchestrator(request: Request):
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")
    return orchestrator


def build_tool_context(request: Request, user_id: str, project_id: str) -> ToolContext:
    state = request.app.state
    credentials = {}
    da_token = request.headers.get("X-DA-Token")
    if da_token:
        credentials["da_token"] = da_token
    return ToolContext(
        user_id=user_id,
        project_id=project_id,
        db=getattr(state, "db", None),
        vector_index=getattr(state, "vector_index", None),
        embedder=getattr(state, "embedder", None),
        content_client=getattr(state, "content_client", None),
        credentials=credentials,
    )


@router.post("/{project_id}/stream")
async def stream_orchestration(
    project_id: str,
    body: OrchestrateBody,
    request: Request,
    user_id: str = Depends(require_user),
):
    """Run the pipeline in the background and stream its progress events."""
    orchestrator = get_orchestrator(request)
    try:
        prompt = require_prompt(body)
    except ValidationError as e:
        return JSONResponse(status_code=400, content=error_response(e))

    channel = EventChannel()
    orch_request = OrchestrationRequest(
        prompt=prompt, user_id=user_id, project_id=project_id, session_id=body.sessionId
    )

    task = asyncio.create_task(
        orchestrator.run(orch_request, channel, build_tool_context(request, user_id, project_id))
    )
    _stream_tasks.add(task)
    task.add_done_callback(_stream_tasks.discard)

    return sse_response(channel)


@router.post("/{project_id}/execute")
async def execute_orchestration(
    project_id: str,
    body: OrchestrateBody,
    request: Request,
    user_id: str = Depends(require_user),
):
    """Run the pipeline to completion and return the final result."""
    orchestrator = get_orchestrator(request)
    try:
        prompt = require_prompt(body)
    except ValidationError as e:
        return JSONResponse(status_code=400, content=error_response(e))

    sink = CollectingSink()
    result: OrchestrationResult = await orchestrator.run(
        OrchestrationRequest(prompt=prompt, user_id=user_id, project_id=project_id, session_id=body.sessionId),
        sink,
        build_tool_context(request, user_id, project_id),
    )

    await _log_execution(request, user_id, project_id, prompt, result)

    if result.state == OrchestratorState.FAILED:
        return JSONResponse(status_code=502, content={"success": False, "error": result.error})

    data = result.to_dict()
    return {
        "response": data["response"],
        "mode": data["mode"],
        "toolCalls": data["toolCalls"],
        "steps": data["steps"],
        "validation": data["validation"],
    }


@router.get("/{project_id}/history")
async def get_history(
    project_id: str,
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    user_id: str = Depends(require_user),
):
    """Most recent actions for this user and project."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    try:
        rows = await db.fetch(
            "SELECT id, action_type, description, status, created_at FROM action_history "
            "WHERE user_id = $1 AND project_id = $2 ORDER BY created_at DESC LIMIT $3",
            user_id,
            project_id,
            limit or runtime_config.history_limit,
        )
    except ExternalServiceError as e:
        logger.warning(f"History lookup failed: {e}")
        return JSONResponse(status_code=503, content=error_response(e))
    return success_response(actions=rows)


async def _log_execution(
    request: Request, user_id: str, project_id: str, prompt: str, result: OrchestrationResult
) -> None:
    """Record an ai_execute row. Non-fatal."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        return
    output: Dict[str, Any] = {
        "mode": result.mode.value if result.mode else None,
        "tools": result.tools_used,
        "state": result.state.value,
    }
    try:
        await db.execute(
            "INSERT INTO action_history (id, user_id, project_id, action_type, description, input, output, status) "
            "VALUES ($1, $2, $3, $4, $5, $6, $7, $8)",
            str(uuid.uuid4()),
            user_id,
            project_id,
            "ai_execute",
            f"AI: {prompt[:100]}",
            json.dumps({"prompt": prompt}),
            json.dumps(output),
            "failed" if result.state == OrchestratorState.FAILED else "completed",
        )
    except Exception as e:
        logger.warning(f"Failed to log ai_execute action (non-fatal): {e}")
