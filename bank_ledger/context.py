"""
Request Context

Identifies who is calling a ledger operation. Passed explicitly into every
engine call instead of being read from process-wide session state.
"""

from dataclasses import dataclass, field
from typing import Optional
import uuid


@dataclass(frozen=True)
class RequestContext:
    """Caller identity and tracing data for one request"""
    actor_id: str
    is_admin: bool = False
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    session_id: Optional[str] = None

    def log_fields(self) -> dict:
        """Keyword arguments for log_action"""
        return {"user_id": self.actor_id, "correlation_id": self.correlation_id}


def system_context(actor_id: str = "system") -> RequestContext:
    """Context for provisioning scripts and internal jobs"""
    return RequestContext(actor_id=actor_id, is_admin=True)
