from __future__ import annotations

import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from ..outcome import classify


@dataclass(frozen=True)
class TransactionRequest:
    """One tick's request; built fresh and dropped after dispatch."""

    operation: str
    contract_id: str
    function: str
    arguments: tuple[str, ...]
    invoker: str
    read_only: bool
    timeout_s: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "contractId": self.contract_id,
            "contractFunction": self.function,
            "contractArguments": list(self.arguments),
            "invokerIdentity": self.invoker,
            "readOnly": self.read_only,
            "timeout": self.timeout_s,
        }


@dataclass(frozen=True)
class OutcomeRecord:
    operation: str
    ok: bool
    start_ms: float
    end_ms: float

    @property
    def latency_ms(self) -> float:
        return max(self.end_ms - self.start_ms, 0.0)


SubmitFn = Callable[[TransactionRequest], Union[Awaitable[Any], Any]]


def monotonic_ms() -> float:
    return time.perf_counter_ns() / 1e6


class TransactionDispatcher:
    """Submits requests and turns every outcome, including errors, into a record."""

    def __init__(
        self,
        send: SubmitFn,
        clock: Callable[[], float] = monotonic_ms,
        classifier: Callable[[Any], bool] = classify,
    ) -> None:
        self._send = send
        self._clock = clock
        self._classifier = classifier

    async def dispatch(self, request: TransactionRequest) -> OutcomeRecord:
        start_ms = self._clock()
        try:
            result = self._send(request)
            if inspect.isawaitable(result):
                result = await result
            ok = self._classifier(result)
        except Exception:  # noqa: BLE001
            ok = False
        end_ms = self._clock()
        return OutcomeRecord(
            operation=request.operation, ok=ok, start_ms=start_ms, end_ms=end_ms
        )


__all__ = [
    "OutcomeRecord",
    "SubmitFn",
    "TransactionDispatcher",
    "TransactionRequest",
    "monotonic_ms",
]
