from typing import Optional

from pydantic import Field

from dmchat.model.base import CamelModel


class SendMessageRequest(CamelModel):
    content: Optional[str] = Field(None, description="Message text; optional when an image is attached")
    image: Optional[str] = Field(None, description="Image URL or data URI")
    receiver_id: Optional[str] = Field(None, description="Only read by POST /messages; path routes carry the peer id")
