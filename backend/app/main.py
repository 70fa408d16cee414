from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from app.core.config import settings
from app.core.errors import register_error_handlers
from app.core.logging import configure_logging
from app.routers import invoices

OPENAPI_TAGS = [
    {
        "name": "Invoices",
        "description": "Manage invoices, their line items, status lifecycle and merges.",
    },
]

configure_logging()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Invoicing API. Create draft invoices, edit their line items, move them "
        "through their status lifecycle and merge drafts of one customer."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)

register_error_handlers(app)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(invoices.router, prefix="/v1/invoices", tags=["Invoices"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }
