"""Status ingestion schemas."""
from pydantic import BaseModel


class StatusProcessedResponse(BaseModel):
    """Returned for every accepted status payload, whether or not it alerted."""
    message: str = "Status processed"
