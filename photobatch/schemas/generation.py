from pydantic import BaseModel, Field
from datetime import datetime


class ReserveRequest(BaseModel):
    """Request to reserve a credit for a batch of variations."""
    user_id: str = Field(..., description="The user paying for the batch")
    image_url: str = Field(..., min_length=1, description="Source photo to transform")
    preset_id: str = Field(..., description="Preset from the catalog (e.g. 'mapleAutumn')")
    style_id: str = Field(default="photorealistic", description="Photo style id")
    image_count: int = Field(default=4, ge=1, le=4, description="Number of variations in the batch")


class ReserveResponse(BaseModel):
    success: bool = True
    session_id: str
    generation_id: str
    is_free_generation: bool
    remaining_free: int
    remaining_paid: int
    image_count: int
    expires_at: datetime


class VariationRequest(BaseModel):
    """Request to generate one variation of a reserved batch."""
    user_id: str
    session_id: str
    variation_index: int = Field(..., description="Slot in the batch, 0-based")


class VariationResponse(BaseModel):
    success: bool = True
    variation_index: int
    image_url: str
    image_id: str
    generation_id: str
    completed_count: int
    is_last: bool
    already_completed: bool = False


class BatchRequest(ReserveRequest):
    """Reserve and run a whole batch server-side."""


class SlotInfo(BaseModel):
    index: int
    status: str
    image_url: str | None = None
    image_id: str | None = None
    error_code: str | None = None
    error: str | None = None
    retryable: bool = False


class BatchResponse(BaseModel):
    session_id: str
    generation_id: str
    is_free_generation: bool
    succeeded: int
    slots: list[SlotInfo]


class GenerationInfo(BaseModel):
    """A generation record as the gallery sees it (populated slots only)."""
    id: str
    preset_id: str
    style_id: str
    status: str
    is_complete: bool
    is_free_generation: bool
    image_urls: list[str]
    created_at: datetime


class GenerationDetail(GenerationInfo):
    # Ordered slots, null where a variation has not landed (or failed)
    slots: list[str | None]
    expected_image_count: int


class PresetInfo(BaseModel):
    id: str
    name: str
    emoji: str
    description: str
    requires_refs: bool

    class Config:
        from_attributes = True


class PresetCatalogResponse(BaseModel):
    presets: list[PresetInfo]
    styles: list[str]
