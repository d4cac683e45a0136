from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ideabank.config import logger
from ideabank.services.idea_bank_service import build_default_service

from .routers import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = build_default_service()
    service.start()
    app.state.idea_bank_service = service
    try:
        yield
    finally:
        await service.stop()
        logger.info("Idea Bank service stopped")


# Initialize FastAPI application
app = FastAPI(
    title="Idea Bank API",
    description="AI-assisted ad concept suggestions and template slot filling",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


logger.info("Idea Bank API initialized successfully")
