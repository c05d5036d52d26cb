import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from closet.config import logger
from closet.core.cache import TieredCache
from closet.core.compositor import OutfitCompositor
from closet.core.database_ops import ClosetDatabase
from closet.core.gemini import RetryingGeminiCaller
from closet.core.rate_limit import RateLimiter
from closet.core.storage_ops import ClosetStorage
from closet.services.closet_service import ClosetService
from closet.services.generation_service import GenerationOrchestrator

from .routers import router


def init_services(app: FastAPI) -> None:
    """Build the long-lived service objects once and attach them to the app."""
    database = ClosetDatabase()
    storage = ClosetStorage()

    app.state.database = database
    app.state.closet_service = ClosetService(database, storage)
    app.state.orchestrator = GenerationOrchestrator(
        caller=RetryingGeminiCaller(),
        cache=TieredCache(database, storage),
        rate_limiter=RateLimiter(),
        compositor=OutfitCompositor(),
    )


# Initialize FastAPI application
app = FastAPI(
    title="Virtual Closet API",
    description="AI-powered outfit generation for your virtual closet",
    version="1.0.0",
)

app.include_router(router)
init_services(app)


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


logger.info("Virtual Closet API initialized successfully")


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
