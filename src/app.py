"""RxGate FastAPI application.

Serves the consults API and guards storefront cart mutations with the
purchase gate. Every request runs inside the consults domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied.
from consults.domain import consults  # noqa: E402
from consults.utils.logging import configure_logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

configure_logging()
consults.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="RxGate API",
    description="Consultation gating for regulated products",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# The gate queries approvals, so it must run inside the domain context below.
# Middleware registered later wraps middleware registered earlier.
from consults.api.errors import register_exception_handlers  # noqa: E402
from consults.api.gating import install_consult_gating  # noqa: E402

install_consult_gating(app)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the consults domain context for each request."""
    with consults.domain_context():
        response = await call_next(request)
    return response


register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from consults.api.routes import consult_router  # noqa: E402

app.include_router(consult_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"consults": {"name": consults.name}},
        }
    )
