# apps/core/services/results.py
"""
Aggregate results for batch operations that process each item independently.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class BatchFailure:
    item_id: str
    error: str


@dataclass
class BatchResult:
    succeeded: List[str] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def record_success(self, item_id) -> None:
        self.succeeded.append(str(item_id))

    def record_failure(self, item_id, error) -> None:
        self.failures.append(BatchFailure(item_id=str(item_id), error=str(error)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'succeeded': list(self.succeeded),
            'failures': [
                {'item_id': failure.item_id, 'error': failure.error}
                for failure in self.failures
            ],
        }
