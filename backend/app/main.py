from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware.exceptions import register_exception_handlers
from app.routers import health, models, objects, wizards, workflows

app = FastAPI(
    title="Codex Structure",
    description="Workflow engine, wizard runs and batch updates for user-defined data models",
    version="0.1.0",
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(models.router, prefix="/api/models", tags=["models"])
app.include_router(objects.router, prefix="/api/models", tags=["objects"])
app.include_router(workflows.router, prefix="/api/workflows", tags=["workflows"])
app.include_router(wizards.router, prefix="/api/wizards", tags=["wizards"])
