from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from lms_service.errors import LMSError

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNEXPECTED_ERROR = "Unexpected error"


@dataclass
class BatchItem:
    key: Any
    success: bool
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"key": self.key, "success": self.success}
        if self.success:
            payload["result"] = self.result
        else:
            payload["error"] = self.error
        return payload


@dataclass
class BatchResult:
    items: List[BatchItem] = field(default_factory=list)
    duration: float = 0.0

    @property
    def successes(self) -> List[BatchItem]:
        return [item for item in self.items if item.success]

    @property
    def failures(self) -> List[BatchItem]:
        return [item for item in self.items if not item.success]

    def summary(self) -> Dict[str, Any]:
        return {
            "total": len(self.items),
            "succeeded": len(self.successes),
            "failed": len(self.failures),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "results": [item.to_dict() for item in self.items],
        }


class BatchRunner:
    """Run one operation per item, each independently, in input order.

    A failing item never aborts the batch. Domain errors carry their own
    message into the item; anything else is logged and reported generically.
    """

    def __init__(self, operation_name: str) -> None:
        self.operation_name = operation_name

    async def _run_one(self, key: Any, func: Callable[[T], Awaitable[Any]], item: T) -> BatchItem:
        try:
            result = await func(item)
            return BatchItem(key=key, success=True, result=result)
        except LMSError as exc:
            logger.warning("%s item %s failed: %s", self.operation_name, key, exc.message)
            return BatchItem(key=key, success=False, error=exc.message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s item %s failed unexpectedly: %s", self.operation_name, key, exc)
            return BatchItem(key=key, success=False, error=UNEXPECTED_ERROR)

    async def run(
        self,
        items: Iterable[T],
        func: Callable[[T], Awaitable[Any]],
        key: Callable[[T], Any] = lambda item: item,
    ) -> BatchResult:
        start = time.perf_counter()
        batch = BatchResult()
        for item in items:
            batch.items.append(await self._run_one(key(item), func, item))
        batch.duration = time.perf_counter() - start
        logger.info(
            "%s finished: %s succeeded, %s failed (%.2fs)",
            self.operation_name, len(batch.successes), len(batch.failures), batch.duration,
        )
        return batch
