# webhook_schema.py
from pydantic import BaseModel, Field, ConfigDict


class WebhookReceiveResponse(BaseModel):
    eventId: str
    queued: bool = True


class ProcessWebhookRequest(BaseModel):
    event_id: str = Field(..., alias="eventId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class ProcessWebhookResponse(BaseModel):
    converged: bool
