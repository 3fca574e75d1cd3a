from typing import Optional

from pydantic import BaseModel


class HealthAction(BaseModel):
    action: str  # force-check | reset-metrics | start-monitoring | stop-monitoring
    provider: Optional[str] = None
