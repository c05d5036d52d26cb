"""FastAPI dependencies shared across closet endpoints."""

from fastapi import Request

from closet.core.database_ops import ClosetDatabase
from closet.services.closet_service import ClosetService
from closet.services.generation_service import GenerationOrchestrator


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_closet_service(request: Request) -> ClosetService:
    return request.app.state.closet_service


def get_database(request: Request) -> ClosetDatabase:
    return request.app.state.database
