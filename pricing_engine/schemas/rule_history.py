from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from pricing_engine.schemas.common import CamelModel, HistoryAction


class Actor(BaseModel):
    """Who performed an administrative change, as asserted by the caller."""

    user_id: str = "system"
    user_name: str = "System User"
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def client_metadata(self) -> Optional[Dict[str, Any]]:
        metadata = {
            key: value
            for key, value in (("ip", self.client_ip), ("userAgent", self.user_agent))
            if value
        }
        return metadata or None


class FieldChange(CamelModel):
    old: Any = None
    new: Any = None


class RuleHistoryEntry(CamelModel):
    """An append-only record of one rule lifecycle transition."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    rule_id: str
    action: HistoryAction
    changes: Dict[str, FieldChange] = Field(default_factory=dict)
    user_id: str
    user_name: str
    timestamp: datetime
    reason: Optional[str] = None
    client_metadata: Optional[Dict[str, Any]] = None
