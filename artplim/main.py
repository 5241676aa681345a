import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db
from .routers import auth as auth_router
from .routers import financial as financial_router

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("artplim")


def create_app() -> FastAPI:
    app = FastAPI(title="ArtPlim ERP – Financial API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def on_startup():
        await init_db()
        logger.info("Database ready (%s)", settings.environment)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(auth_router.router)
    app.include_router(financial_router.router)

    return app


app = create_app()
