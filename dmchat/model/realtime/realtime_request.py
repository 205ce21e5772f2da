from pydantic import Field

from dmchat.model.base import CamelModel


class TypingRequest(CamelModel):
    receiver_id: str = Field(..., description="Peer that should see the indicator")
    is_typing: bool = Field(..., description="True while the sender is composing")
