"""
Outbox Models
Pending SSO integration rows awaiting reconciliation
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone
from dataclasses import dataclass, field

from shared.schemas.sso import SSOIntegrationRow


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OutboxEntry:
    """SSO link whose inline insert failed"""
    row: SSOIntegrationRow
    attempts: int = 0
    enqueued_at: datetime = field(default_factory=_utcnow)
    last_error: Optional[str] = None
    # Serialized form as claimed from Redis, used to release the claim
    raw: Optional[str] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'row': self.row.insert_payload(),
            'attempts': self.attempts,
            'enqueued_at': self.enqueued_at.isoformat(),
            'last_error': self.last_error
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutboxEntry":
        return cls(
            row=SSOIntegrationRow.model_validate(data['row']),
            attempts=int(data.get('attempts', 0)),
            enqueued_at=datetime.fromisoformat(data['enqueued_at']),
            last_error=data.get('last_error')
        )

    def failed(self, error: str) -> "OutboxEntry":
        """Copy of this entry with one more recorded attempt"""
        return OutboxEntry(
            row=self.row,
            attempts=self.attempts + 1,
            enqueued_at=self.enqueued_at,
            last_error=error,
            raw=self.raw
        )
