from photobatch.schemas.generation import (
    ReserveRequest,
    ReserveResponse,
    VariationRequest,
    VariationResponse,
    BatchRequest,
    BatchResponse,
    SlotInfo,
    GenerationInfo,
    GenerationDetail,
    PresetInfo,
    PresetCatalogResponse,
)
from photobatch.schemas.credits import (
    BalanceResponse,
    CreditTransactionInfo,
    CreditHistoryResponse,
)
from photobatch.schemas.image import (
    ImageInfo,
    ImageUpdateRequest,
)
from photobatch.schemas.webhook import (
    RevenueCatEventBody,
    RevenueCatWebhook,
)

__all__ = [
    "ReserveRequest",
    "ReserveResponse",
    "VariationRequest",
    "VariationResponse",
    "BatchRequest",
    "BatchResponse",
    "SlotInfo",
    "GenerationInfo",
    "GenerationDetail",
    "PresetInfo",
    "PresetCatalogResponse",
    "BalanceResponse",
    "CreditTransactionInfo",
    "CreditHistoryResponse",
    "ImageInfo",
    "ImageUpdateRequest",
    "RevenueCatEventBody",
    "RevenueCatWebhook",
]
