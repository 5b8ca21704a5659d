# FridgeMind API Main Entry Point
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .core.errors import InferenceError, InferenceUnavailable, StorageError
from .infra.rate_limit import limiter
from .routers.inventory import router as inventory_router
from .routers.meal_plan import router as meal_plan_router
from .routers.meals import router as meals_router
from .routers.ready import router as ready_router
from .routers.receipts import router as receipts_router
from .routers.recipes import router as recipes_router
from .routers.workspaces import router as workspaces_router
from .settings import settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("fridgemind")

app = FastAPI(title="FridgeMind API", version="0.1.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"{request.method} {request.url.path}: {exc} ({exc.detail})")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(InferenceUnavailable)
async def inference_unavailable_handler(request: Request, exc: InferenceUnavailable):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(InferenceError)
async def inference_error_handler(request: Request, exc: InferenceError):
    logger.error(f"{request.method} {request.url.path}: {exc} ({exc.detail})")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(workspaces_router, prefix="/api", tags=["workspaces"])
app.include_router(inventory_router, prefix="/api/inventory", tags=["inventory"])
app.include_router(recipes_router, prefix="/api/recipes", tags=["recipes"])
app.include_router(meal_plan_router, prefix="/api/meal-plan", tags=["meal-plan"])
app.include_router(meals_router, prefix="/api", tags=["meals"])
app.include_router(receipts_router, prefix="/api/receipts", tags=["receipts"])
