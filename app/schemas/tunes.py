from typing import Optional

from pydantic import BaseModel


class TuneResponse(BaseModel):
    started: bool
    reason: str
    api_status: Optional[dict] = None
