from typing import Any, Dict, Optional

from fastapi import Request

from fieldflow.engine.workflow_engine import WorkflowEngine, build_engine


def get_engine(request: Request) -> WorkflowEngine:
    """Engine stored on app.state by the lifespan; built lazily otherwise."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        engine = build_engine()
        request.app.state.engine = engine
    return engine


def standard_response(
    status: str = "ok",
    data: Optional[Any] = None,
    message: Optional[str] = None
) -> Dict[str, Any]:
    return {
        "status": status,
        "data": data,
        "message": message
    }
