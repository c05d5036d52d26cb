"""FastAPI router for virtual closet endpoints."""

import math
from typing import List, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    UploadFile,
)

from closet.config import logger
from closet.core.database_ops import ClosetDatabase
from closet.services.closet_service import ClosetService
from closet.services.generation_service import (
    GarmentRef,
    GenerationOrchestrator,
    GenerationResult,
    InspirationImage,
)

from .dependencies import get_closet_service, get_database, get_orchestrator
from .models import (
    CacheStatusResponse,
    Category,
    ClothingItemResponse,
    GeneratedOutfitResponse,
    GenerationResponse,
    LikeRequest,
    NanoGenerationRequest,
    RateLimitConfigRequest,
    RateLimitStatusResponse,
    SelectGenerationRequest,
)

router = APIRouter(prefix="/api/v1", tags=["Virtual Closet"])

ERROR_STATUS_CODES = {
    "RateLimited": 429,
    "ConfigurationError": 503,
    "ReferenceImageError": 400,
    "GenerationError": 400,
}


def _to_response(result: Optional[GenerationResult]) -> GenerationResponse:
    """Translate an orchestrator result into a response or an HTTPException."""
    if result is None:
        raise HTTPException(
            status_code=409,
            detail="A generation is already in progress. Please wait for it to finish.",
        )

    if result.success and result.image_url:
        return GenerationResponse(
            success=True,
            image_url=result.image_url,
            is_composite=result.is_composite,
            source=result.source,
            cached=result.cached,
            notice=result.notice,
        )

    status_code = ERROR_STATUS_CODES.get(result.error_type or "", 502)
    headers = None
    if result.error_type == "RateLimited" and result.wait_time_ms is not None:
        headers = {"Retry-After": str(max(1, math.ceil(result.wait_time_ms / 1000)))}

    raise HTTPException(status_code=status_code, detail=result.error, headers=headers)


async def _resolve_garment(
    database: ClosetDatabase, item_id: str, category: str
) -> GarmentRef:
    item = await database.get_clothing_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail=f"Clothing item not found: {item_id}")
    if item.get("category") != category:
        raise HTTPException(
            status_code=400,
            detail=f"Clothing item {item_id} is not a {category}",
        )
    return GarmentRef(image_url=item["image_url"], id=str(item["id"]))


# -------------------------
# Clothing items
# -------------------------
@router.get("/items", response_model=List[ClothingItemResponse])
async def list_items(
    category: Category = Query(..., description="top or bottom"),
    service: ClosetService = Depends(get_closet_service),
) -> List[dict]:
    """List clothing items of a category, newest first."""
    try:
        return await service.list_items(category)
    except Exception as exc:
        logger.error("Error listing clothing items", extra={"error": str(exc)})
        raise HTTPException(status_code=500, detail=f"Failed to list items: {exc}")


@router.post("/items", response_model=ClothingItemResponse, status_code=201)
async def add_item(
    name: str = Form(..., min_length=1, max_length=200),
    category: Category = Form(...),
    image: UploadFile = File(..., description="Clothing photo"),
    service: ClosetService = Depends(get_closet_service),
) -> dict:
    """Upload a clothing photo into the closet."""
    try:
        file_bytes = await image.read()
        return await service.add_item(
            name=name,
            category=category,
            file_bytes=file_bytes,
            filename=image.filename or f"{category}.png",
            content_type=image.content_type or "image/png",
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.error("Error adding clothing item", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to add item: {exc}")
    finally:
        await image.close()


@router.delete("/items/{item_id}")
async def delete_item(
    item_id: str,
    service: ClosetService = Depends(get_closet_service),
) -> dict:
    """Delete a clothing item and its stored photo."""
    try:
        deleted = await service.delete_item(item_id)
    except Exception as exc:
        logger.error(
            "Error deleting clothing item",
            extra={"item_id": item_id, "error": str(exc)},
        )
        raise HTTPException(status_code=500, detail=f"Failed to delete item: {exc}")

    if not deleted:
        raise HTTPException(status_code=404, detail=f"Clothing item not found: {item_id}")
    return {"success": True, "id": item_id}


# -------------------------
# Generation
# -------------------------
@router.post("/generate/select", response_model=GenerationResponse)
async def generate_select(
    payload: SelectGenerationRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    database: ClosetDatabase = Depends(get_database),
) -> GenerationResponse:
    """Dress the mannequin in a selected top and bottom."""
    if payload.top_id and payload.bottom_id:
        try:
            top = await _resolve_garment(database, payload.top_id, "top")
            bottom = await _resolve_garment(database, payload.bottom_id, "bottom")
        except HTTPException:
            raise
        except Exception as exc:
            logger.error("Error resolving clothing items", extra={"error": str(exc)})
            raise HTTPException(status_code=500, detail=f"Failed to load items: {exc}")
    else:
        top = GarmentRef(image_url=payload.top_image_url)
        bottom = GarmentRef(image_url=payload.bottom_image_url)

    logger.info(
        "Select generation requested",
        extra={"top_id": top.id, "bottom_id": bottom.id},
    )
    result = await orchestrator.generate_outfit(top, bottom)
    return _to_response(result)


@router.post("/generate/nano", response_model=GenerationResponse)
async def generate_nano(
    payload: NanoGenerationRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationResponse:
    """Style the mannequin for a free-text occasion."""
    logger.info("Nano generation requested", extra={"occasion_length": len(payload.occasion)})
    result = await orchestrator.generate_nano_outfit(payload.occasion)
    return _to_response(result)


@router.post("/generate/transfer", response_model=GenerationResponse)
async def generate_transfer(
    inspiration_image: UploadFile = File(..., description="Outfit inspiration photo"),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationResponse:
    """Transfer the outfit in an inspiration photo onto the mannequin."""
    try:
        content = await inspiration_image.read()
        inspiration = InspirationImage(
            file_name=inspiration_image.filename or "inspiration.png",
            content=content,
            content_type=inspiration_image.content_type or "image/png",
        )
        logger.info(
            "Transfer generation requested",
            extra={"file_name": inspiration.file_name, "size": inspiration.size},
        )
        result = await orchestrator.generate_outfit_transfer(inspiration)
        return _to_response(result)
    finally:
        await inspiration_image.close()


# -------------------------
# Generated outfits
# -------------------------
@router.get("/outfits", response_model=List[GeneratedOutfitResponse])
async def list_outfits(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    liked_only: bool = Query(False),
    database: ClosetDatabase = Depends(get_database),
) -> List[dict]:
    """List generated outfits, newest first."""
    try:
        return await database.list_generated_outfits(
            limit=limit, offset=offset, liked_only=liked_only
        )
    except Exception as exc:
        logger.error("Error listing generated outfits", extra={"error": str(exc)})
        raise HTTPException(status_code=500, detail=f"Failed to list outfits: {exc}")


@router.patch("/outfits/{outfit_id}/like", response_model=GeneratedOutfitResponse)
async def like_outfit(
    outfit_id: str,
    payload: LikeRequest,
    database: ClosetDatabase = Depends(get_database),
) -> dict:
    """Set or clear the liked flag of a generated outfit."""
    try:
        return await database.set_generated_outfit_liked(outfit_id, payload.is_liked)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except Exception as exc:
        logger.error(
            "Error updating liked flag",
            extra={"outfit_id": outfit_id, "error": str(exc)},
        )
        raise HTTPException(status_code=500, detail=f"Failed to update outfit: {exc}")


# -------------------------
# Rate limit & cache
# -------------------------
def _rate_limit_status(orchestrator: GenerationOrchestrator) -> RateLimitStatusResponse:
    status = orchestrator.rate_limit_status()
    decision = orchestrator.rate_limiter.can_make_call()
    return RateLimitStatusResponse(**status, **decision.to_dict())


@router.get("/ratelimit", response_model=RateLimitStatusResponse)
async def get_rate_limit(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> RateLimitStatusResponse:
    """Report the generation rate limiter state."""
    return _rate_limit_status(orchestrator)


@router.put("/ratelimit", response_model=RateLimitStatusResponse)
async def configure_rate_limit(
    payload: RateLimitConfigRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> RateLimitStatusResponse:
    """Reconfigure the rate limiter; applies from the next check on."""
    orchestrator.rate_limiter.update_config(**payload.model_dump())
    return _rate_limit_status(orchestrator)


@router.get("/cache", response_model=CacheStatusResponse)
async def get_cache_status(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> CacheStatusResponse:
    return CacheStatusResponse(
        size=orchestrator.cache_size(), is_generating=orchestrator.is_generating
    )


@router.delete("/cache", response_model=CacheStatusResponse)
async def clear_cache(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> CacheStatusResponse:
    """Drop the in-memory tier. Durable composites are kept."""
    orchestrator.clear_cache()
    return CacheStatusResponse(size=0, is_generating=orchestrator.is_generating)


@router.get("/health")
async def health_check() -> dict:
    """Simple health check endpoint."""

    return {
        "status": "healthy",
        "service": "virtual-closet-api",
        "version": "1.0.0",
    }
