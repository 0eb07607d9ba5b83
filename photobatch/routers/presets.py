from fastapi import APIRouter

from photobatch.schemas import PresetCatalogResponse, PresetInfo
from photobatch.services import presets

router = APIRouter(prefix="/presets", tags=["presets"])


@router.get("", response_model=PresetCatalogResponse)
async def list_presets():
    """List the preset catalog and the supported photo styles."""
    return PresetCatalogResponse(
        presets=[PresetInfo.model_validate(preset) for preset in presets.list_presets()],
        styles=presets.list_styles(),
    )
