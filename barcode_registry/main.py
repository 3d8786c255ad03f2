import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .barcodes import StoreUnavailable
from .core.config import settings
from .core.logging_setup import setup_logging
from .counters import run_reconciler
from .deps import SessionLocal, init_models
from .routers import barcode_items

setup_logging(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    reconciler = None
    if settings.COUNTER_RECONCILE_INTERVAL_S > 0:
        reconciler = asyncio.create_task(run_reconciler(SessionLocal, settings.COUNTER_RECONCILE_INTERVAL_S))
    yield
    if reconciler is not None:
        reconciler.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reconciler


app = FastAPI(title="Barcode Registry API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Registro de códigos de barra no disponible, reintente más tarde"},
        headers={"Retry-After": "5"},
    )


app.include_router(barcode_items.router)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}
