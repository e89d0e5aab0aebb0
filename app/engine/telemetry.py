"""
Execution telemetry records.

One ExecutionLogEntry is produced per agent invocation attempt and
handed to a TelemetrySink. Sinks are best effort: the engine logs and
ignores their failures.
"""

from typing import Any, Dict, Optional, Protocol
from dataclasses import dataclass, field
from datetime import datetime
import uuid


@dataclass
class ExecutionLogEntry:
    """Outcome of one agent invocation."""
    agent_name: str
    status: str  # "success" | "error"
    latency_ms: float
    execution_id: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    error_details: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agentName": self.agent_name,
            "executionId": self.execution_id,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "latency": self.latency_ms,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
            "errorDetails": self.error_details,
        }


class TelemetrySink(Protocol):
    """Append-only destination for ExecutionLogEntry records."""

    async def append(self, entry: ExecutionLogEntry) -> None:
        ...
