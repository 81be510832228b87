from __future__ import annotations

from fastapi import FastAPI, HTTPException

from taskboard.api.routers import board, identity, task, workspace
from taskboard.infra.audit import AuditMiddleware
from taskboard.infra.db import check_db_ready
from taskboard.infra.logging import configure_logging

configure_logging()

app = FastAPI(
    title="taskboard",
    description="Collaborative task board: task tree, permissions, activity log and realtime fan-out.",
    version="0.1.0",
)

app.add_middleware(AuditMiddleware)

app.include_router(identity.router, prefix="/api/user", tags=["user"])
app.include_router(workspace.router, prefix="/api/workspace", tags=["workspace"])
app.include_router(board.router, prefix="/api/board", tags=["board"])
app.include_router(board.ws_router, tags=["board-ws"])
app.include_router(task.router, prefix="/api/task", tags=["task"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
