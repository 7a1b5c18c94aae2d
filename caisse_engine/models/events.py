"""Notification envelope for contract lifecycle events."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

EVENT_SOURCE = "caisse-engine"


@dataclass
class ContractEvent:
    """Standard event envelope for contract notifications."""

    event_id: str
    event_type: str  # entity.action (e.g., payment.recorded, contract.closed)
    event_time: datetime
    source: str
    subject: str  # Contract ID affected
    data: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, event_type: str, subject: str, data: dict[str, Any]) -> "ContractEvent":
        return cls(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            event_time=datetime.now(),
            source=EVENT_SOURCE,
            subject=subject,
            data=data,
        )
