from photobatch.models.credit_account import CreditAccount
from photobatch.models.credit_transaction import CreditTransaction
from photobatch.models.generation import GenerationRecord
from photobatch.models.generation_session import GenerationSession
from photobatch.models.image import Image
from photobatch.models.processed_purchase import ProcessedPurchase

__all__ = [
    "CreditAccount",
    "CreditTransaction",
    "GenerationRecord",
    "GenerationSession",
    "Image",
    "ProcessedPurchase",
]
