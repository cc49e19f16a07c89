from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

DEFAULT_CONTRACT_ID = "acmc"
DEFAULT_INVOKER = "User1"
DEFAULT_TIMEOUT_S = 60.0
DEFAULT_RESOURCE_CID = "QmdyzCHpa2vnn3zBvH1hfy4e5zdEuQGUvVfgtFfBnGFhKM"
DEFAULT_IDENTITY_DIR = "register"
DEFAULT_OUTPUT_DIR = "output/latency"

# Insertion order is the order of the cumulative table.
DEFAULT_OPERATION_WEIGHTS: dict[str, float] = {
    "addResource": 0.2,
    "addPerm": 0.2,
    "checkPerm": 0.4,
    "traceCid": 0.1,
    "queryCid": 0.1,
    "register": 0.0,
    "queryUser": 0.0,
}


class WorkloadConfigError(ValueError):
    """Raised when round arguments cannot produce a valid workload."""


def weight_key(operation: str) -> str:
    return f"w{operation[0].upper()}{operation[1:]}"


@dataclass(frozen=True)
class RoundSettings:
    """Resolved round arguments for one mixed-workload run."""

    contract_id: str = DEFAULT_CONTRACT_ID
    label: str = "sysmix_0"
    timeout_s: float = DEFAULT_TIMEOUT_S
    operation_weights: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_OPERATION_WEIGHTS)
    )
    invoker: str = DEFAULT_INVOKER
    invoker_ids: tuple[str, ...] = ()
    invoker_weights: tuple[float, ...] | None = None
    identity_dir: Path = Path(DEFAULT_IDENTITY_DIR)
    owner_identity: str = "user_1"
    requester_identity: str = "user_2"
    resource_cid: str = DEFAULT_RESOURCE_CID
    perm_cid: str = f"{DEFAULT_RESOURCE_CID}_1"
    trace_cid: str = f"{DEFAULT_RESOURCE_CID}_2"
    perm_operation: str = "download"
    perm_roles: tuple[str, ...] = ("Public",)
    cid_prefix: str = "QmMix"
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)

    @classmethod
    def from_arguments(
        cls, arguments: Mapping[str, Any] | None = None, round_index: int = 0
    ) -> "RoundSettings":
        args = dict(arguments or {})

        unknown = {
            key
            for key in args
            if key.startswith("w")
            and key[1:2].isupper()
            and not key.startswith("wOrg")
            and key not in {weight_key(op) for op in DEFAULT_OPERATION_WEIGHTS}
        }
        if unknown:
            raise WorkloadConfigError(
                f"unknown operation weight(s): {', '.join(sorted(unknown))}"
            )

        operation_weights = {
            op: _weight(args, weight_key(op), default)
            for op, default in DEFAULT_OPERATION_WEIGHTS.items()
        }
        invoker_ids, invoker_weights = _invokers(args)

        resource_cid = _text(args, "resourceCid", DEFAULT_RESOURCE_CID)
        timeout_s = _weight(args, "timeout", DEFAULT_TIMEOUT_S)
        if timeout_s <= 0:
            raise WorkloadConfigError("timeout must be > 0")

        settings = cls(
            contract_id=_text(args, "contractId", DEFAULT_CONTRACT_ID),
            label=_text(args, "label", f"sysmix_{round_index}"),
            timeout_s=timeout_s,
            operation_weights=operation_weights,
            invoker=_text(args, "invoker", DEFAULT_INVOKER),
            invoker_ids=invoker_ids,
            invoker_weights=invoker_weights,
            identity_dir=Path(_text(args, "identityDir", DEFAULT_IDENTITY_DIR)),
            owner_identity=_text(args, "ownerIdentity", "user_1"),
            requester_identity=_text(args, "requesterIdentity", "user_2"),
            resource_cid=resource_cid,
            perm_cid=_text(args, "permCid", f"{resource_cid}_1"),
            trace_cid=_text(args, "traceCid", f"{resource_cid}_2"),
            perm_operation=_text(args, "permOperation", "download"),
            perm_roles=_roles(args.get("permRoles")),
            cid_prefix=_text(args, "cidPrefix", "QmMix"),
            output_dir=Path(_text(args, "outputDir", DEFAULT_OUTPUT_DIR)),
        )
        # Fail at setup rather than on the first pick.
        settings.normalised_operation_weights()
        return settings

    def normalised_operation_weights(self) -> dict[str, float]:
        return _normalise(self.operation_weights)

    def active_operations(self) -> list[str]:
        return [op for op, weight in self.operation_weights.items() if weight > 0]


def normalise_weights(weights: Sequence[float]) -> list[float]:
    for value in weights:
        if not math.isfinite(value):
            raise WorkloadConfigError(f"weight {value!r} is not a finite number")
        if value < 0:
            raise WorkloadConfigError(f"weight {value!r} is negative")
    total = math.fsum(weights)
    if total <= 0:
        raise WorkloadConfigError("weights must sum to > 0")
    return [value / total for value in weights]


def _normalise(weights: Mapping[str, float]) -> dict[str, float]:
    return dict(zip(weights, normalise_weights(list(weights.values()))))


def _weight(args: Mapping[str, Any], key: str, default: float) -> float:
    value = args.get(key)
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise WorkloadConfigError(f"{key} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise WorkloadConfigError(f"{key} must be finite, got {value!r}")
    return number


def _count(args: Mapping[str, Any], key: str) -> int:
    value = args.get(key)
    if value is None:
        return 0
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        raise WorkloadConfigError(f"{key} must be an integer, got {value!r}") from None


def _text(args: Mapping[str, Any], key: str, default: str) -> str:
    value = args.get(key)
    if value is None or value == "":
        return default
    return str(value)


def _roles(value: Any) -> tuple[str, ...]:
    if value is None:
        return ("Public",)
    if isinstance(value, str):
        roles = tuple(part.strip() for part in value.split(",") if part.strip())
    else:
        roles = tuple(str(part) for part in value)
    if not roles:
        raise WorkloadConfigError("permRoles must name at least one role")
    return roles


def _invokers(args: Mapping[str, Any]) -> tuple[tuple[str, ...], tuple[float, ...] | None]:
    count_key = "invokerOrgCount" if "invokerOrgCount" in args else "orgInvokerCount"
    count = _count(args, count_key)

    ids: list[str] = []
    weights: list[float] = []
    weighted = False
    for idx in range(1, count + 1):
        identifier = args.get(f"invokerOrg{idx}")
        if not identifier:
            continue
        if f"wOrg{idx}" in args:
            weighted = True
        ids.append(str(identifier))
        weights.append(_weight(args, f"wOrg{idx}", 1.0))

    if not ids:
        return (), None
    return tuple(ids), (tuple(weights) if weighted else None)


__all__ = [
    "DEFAULT_OPERATION_WEIGHTS",
    "RoundSettings",
    "WorkloadConfigError",
    "normalise_weights",
    "weight_key",
]
