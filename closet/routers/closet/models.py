"""Pydantic models used by the closet router."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

Category = Literal["top", "bottom"]


class ClothingItemResponse(BaseModel):
    id: str
    name: str
    category: Category
    image_url: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class SelectGenerationRequest(BaseModel):
    """Either both clothing item ids or both image URLs must be supplied."""

    top_id: Optional[str] = Field(None, description="clothing_items id of the top")
    bottom_id: Optional[str] = Field(None, description="clothing_items id of the bottom")
    top_image_url: Optional[str] = Field(None, description="Image reference of the top")
    bottom_image_url: Optional[str] = Field(
        None, description="Image reference of the bottom"
    )

    @model_validator(mode="after")
    def _require_pair(self) -> "SelectGenerationRequest":
        has_ids = bool(self.top_id and self.bottom_id)
        has_urls = bool(self.top_image_url and self.bottom_image_url)
        if not (has_ids or has_urls):
            raise ValueError(
                "Provide top_id and bottom_id, or top_image_url and bottom_image_url"
            )
        return self


class NanoGenerationRequest(BaseModel):
    occasion: str = Field(..., min_length=1, max_length=500)


class GenerationResponse(BaseModel):
    """Result of a successful generation."""

    success: bool
    image_url: str
    is_composite: bool = False
    source: Optional[str] = None
    cached: bool = False
    notice: Optional[str] = Field(
        None, description="Set when the image is a composite fallback"
    )


class LikeRequest(BaseModel):
    is_liked: bool


class GeneratedOutfitResponse(BaseModel):
    id: str
    top_id: Optional[str] = None
    bottom_id: Optional[str] = None
    generated_image_url: str
    is_liked: bool = False
    generator_source: Literal["select", "nano", "transfer"]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RateLimitStatusResponse(BaseModel):
    calls_in_window: int
    max_calls: int
    cooldown_ms: int
    window_ms: int
    last_call_at: Optional[int] = None
    next_available_at: int
    allowed: bool
    reason: Optional[str] = None
    wait_time_ms: Optional[int] = None


class RateLimitConfigRequest(BaseModel):
    cooldown_ms: Optional[int] = Field(None, ge=0)
    max_calls: Optional[int] = Field(None, ge=1)
    window_ms: Optional[int] = Field(None, ge=1)


class CacheStatusResponse(BaseModel):
    size: int
    is_generating: bool
