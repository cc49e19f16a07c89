from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

SUCCESS_TOKENS: frozenset[str] = frozenset({"success", "valid", "ok"})
OK_CODE = "OK"


@dataclass(frozen=True)
class StatusResult:
    """A result carrying a textual or boolean status."""

    status: str | bool


@dataclass(frozen=True)
class CodedResult:
    """A result carrying a numeric or symbolic code, where 0 / "OK" means success."""

    code: int | str


@dataclass(frozen=True)
class ErrorResult:
    error: Any


@dataclass(frozen=True)
class UnrecognizedResult:
    value: Any


ResultVariant = Union[StatusResult, CodedResult, ErrorResult, UnrecognizedResult]
_VARIANTS = (StatusResult, CodedResult, ErrorResult, UnrecognizedResult)


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _status_accessor(value: Any):
    for name in ("get_status", "GetStatus"):
        accessor = getattr(value, name, None)
        if callable(accessor):
            return accessor
    return None


def coerce_result(value: Any) -> ResultVariant | None:
    """Map one raw endorser result onto a result variant.

    ``None`` means the element is absent. An ``error``/``err`` field wins over
    everything else; after that the status accessor, ``status`` field and
    ``code`` field are probed in that order.
    """
    if value is None:
        return None
    if isinstance(value, _VARIANTS):
        return value
    if isinstance(value, bool):
        return StatusResult(value)
    if isinstance(value, str):
        return StatusResult(value)
    if isinstance(value, int):
        return CodedResult(value)

    error = _field(value, "error") or _field(value, "err")
    if error:
        return ErrorResult(error)

    accessor = _status_accessor(value)
    if accessor is not None:
        try:
            return StatusResult(accessor())
        except Exception as exc:  # noqa: BLE001
            return ErrorResult(exc)

    status = _field(value, "status")
    if status is not None and status != "":
        return StatusResult(status)

    code = _field(value, "code")
    if code is not None:
        return CodedResult(code)

    return UnrecognizedResult(value)


def is_success_variant(variant: ResultVariant | None) -> bool:
    if isinstance(variant, StatusResult):
        if isinstance(variant.status, bool):
            return variant.status
        return str(variant.status).lower() in SUCCESS_TOKENS
    if isinstance(variant, CodedResult):
        code = variant.code
        if isinstance(code, int) and not isinstance(code, bool):
            return code == 0
        return str(code).upper() == OK_CODE
    return False


def as_result_list(result: Any) -> list[Any]:
    if result is None:
        return []
    if isinstance(result, (list, tuple)):
        return list(result)
    return [result]


def classify(result: Any) -> bool:
    """Success only if some element succeeded and none dissented."""
    saw_success = False
    for element in as_result_list(result):
        if not is_success_variant(coerce_result(element)):
            return False
        saw_success = True
    return saw_success


__all__ = [
    "CodedResult",
    "ErrorResult",
    "ResultVariant",
    "StatusResult",
    "SUCCESS_TOKENS",
    "UnrecognizedResult",
    "as_result_list",
    "classify",
    "coerce_result",
    "is_success_variant",
]
