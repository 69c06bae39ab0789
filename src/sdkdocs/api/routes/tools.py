"""Endpoints para que un cliente con tool-calling descubra e invoque las tools del asistente."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from sdkdocs.agent.tools import ALL_TOOLS
from sdkdocs.api.schemas import ToolCallRequest, ToolCallResponse, ToolInfo, ToolsResponse

logger = structlog.get_logger(__name__)

router = APIRouter()

_TOOLS = {t.name: t for t in ALL_TOOLS}


@router.get("/tools", response_model=ToolsResponse)
async def list_tools() -> ToolsResponse:
    return ToolsResponse(
        tools=[ToolInfo(name=t.name, description=t.description, args=t.args) for t in ALL_TOOLS]
    )


@router.post("/tools/{name}", response_model=ToolCallResponse)
async def call_tool(name: str, req: ToolCallRequest) -> ToolCallResponse:
    tool = _TOOLS.get(name)
    if tool is None:
        raise HTTPException(status_code=404, detail=f"Tool desconocida: {name}")
    try:
        output = await tool.ainvoke(req.arguments)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    logger.info("tool_called", tool=name, chars=len(output))
    return ToolCallResponse(tool=name, output=output)
