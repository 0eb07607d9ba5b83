from pydantic import BaseModel, Field
from datetime import datetime


class ImageInfo(BaseModel):
    """Info about a single persisted image."""
    id: str
    generation_batch_id: str
    url: str
    preset_id: str
    style_id: str
    image_index: int
    is_public: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ImageUpdateRequest(BaseModel):
    user_id: str
    is_public: bool = Field(..., description="Share the image on the public feed")
