"""
Usage Tracker
Records token usage, latency and outcome of every backend call.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class UsageRecord:
    """One backend call."""
    provider: str
    model: str
    operation: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    success: bool
    interaction_id: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "operation": self.operation,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.input_tokens + self.output_tokens,
            "latency_ms": round(self.latency_ms, 2),
            "success": self.success,
            "interaction_id": self.interaction_id,
            "error_message": self.error_message,
            "timestamp": self.timestamp.isoformat()
        }


class UsageTracker:
    """
    Bounded in-process usage log.

    Recording never raises: a failed usage write must not fail the
    call it describes.
    """

    def __init__(self, max_records: int = 10000):
        self._records: Deque[UsageRecord] = deque(maxlen=max_records)

    def record(self, record: UsageRecord) -> None:
        try:
            self._records.append(record)
            if not record.success:
                logger.debug(
                    f"{record.provider}/{record.operation} failed after "
                    f"{record.latency_ms:.0f}ms: {record.error_message}"
                )
        except Exception as e:
            logger.error(f"Failed to record AI usage: {e}")

    @property
    def records(self) -> List[UsageRecord]:
        return list(self._records)

    def get_stats(self) -> Dict[str, Any]:
        """Aggregate usage by operation."""
        by_operation: Dict[str, Dict[str, Any]] = {}
        for r in self._records:
            stats = by_operation.setdefault(r.operation, {
                "calls": 0, "failures": 0, "total_tokens": 0, "total_latency_ms": 0.0
            })
            stats["calls"] += 1
            stats["failures"] += 0 if r.success else 1
            stats["total_tokens"] += r.input_tokens + r.output_tokens
            stats["total_latency_ms"] += r.latency_ms

        for stats in by_operation.values():
            stats["avg_latency_ms"] = round(stats["total_latency_ms"] / stats["calls"], 2)

        return {
            "total_calls": len(self._records),
            "by_operation": by_operation
        }
