from pydantic import BaseModel


class RevenueCatEventBody(BaseModel):
    """The fields of a RevenueCat event the credit grant needs."""
    type: str
    app_user_id: str
    product_id: str | None = None
    transaction_id: str | None = None
    environment: str | None = None


class RevenueCatWebhook(BaseModel):
    event: RevenueCatEventBody
    api_version: str | None = None
