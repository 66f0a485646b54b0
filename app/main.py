from fastapi import FastAPI

from app.api.auth import router as users_router
from app.api.goals import router as goals_router
from app.api.protocol import router as protocol_router
from app.db.session import create_tables

app = FastAPI(title="Goal Progress Service")


@app.on_event("startup")
def on_startup() -> None:
    create_tables()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api")
def api_root() -> dict[str, str]:
    return {"service": "Goal Progress API", "status": "ok"}


app.include_router(users_router)
app.include_router(goals_router)
app.include_router(protocol_router)
