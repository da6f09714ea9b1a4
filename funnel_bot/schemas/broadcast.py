from typing import Optional, Union

from pydantic import BaseModel, Field

MAX_MESSAGE_LENGTH = 4096


class BroadcastRequest(BaseModel):
    to: Optional[Union[str, list[str]]] = None
    message: Optional[str] = None

    def recipients(self) -> list[str]:
        if self.to is None:
            return []
        if isinstance(self.to, str):
            return [self.to] if self.to else []
        return [item for item in self.to if item]


class BroadcastResponse(BaseModel):
    success: bool
    sent_to: int = Field(serialization_alias="sentTo")
