from __future__ import annotations

import dataclasses
import enum
import json
from dataclasses import dataclass
from typing import Callable

from ..credentials import (
    CredentialSet,
    Identity,
    IdentitySource,
    SigningTask,
    UniqueValueGenerator,
    public_key_user_id,
)
from .config import RoundSettings

REGISTER_ROLES: tuple[str, ...] = ("Creator", "Contributor", "Public")


class OperationKind(enum.Enum):
    CACHED_SIGNATURE = "cached-signature"
    PER_CALL = "per-call"
    QUERY = "query"


class Signer(enum.Enum):
    OWNER = "owner"
    REQUESTER = "requester"

    def identity_name(self, settings: RoundSettings) -> str:
        if self is Signer.OWNER:
            return settings.owner_identity
        return settings.requester_identity


@dataclass(frozen=True)
class BuildContext:
    settings: RoundSettings
    credentials: CredentialSet
    unique: UniqueValueGenerator
    tx_index: int

    def identity(self, signer: Signer) -> Identity:
        return self.credentials.identity(signer.identity_name(self.settings))


ArgumentBuilder = Callable[[BuildContext], list[str]]


@dataclass(frozen=True)
class OperationDescriptor:
    """A named contract call shape and how to build its arguments."""

    name: str
    function: str
    kind: OperationKind
    build: ArgumentBuilder
    signer: Signer | None = None
    signed_resource: Callable[[RoundSettings], str] | None = None
    weight: float = 0.0

    @property
    def read_only(self) -> bool:
        return self.kind is OperationKind.QUERY

    def with_weight(self, weight: float) -> "OperationDescriptor":
        return dataclasses.replace(self, weight=weight)


def roles_json(roles: tuple[str, ...]) -> str:
    return json.dumps(list(roles), separators=(",", ":"))


def _add_resource(ctx: BuildContext) -> list[str]:
    owner = ctx.identity(Signer.OWNER)
    return [
        ctx.credentials.signature_for("addResource"),
        owner.user_id,
        ctx.unique.next_cid(),
    ]


def _add_perm(ctx: BuildContext) -> list[str]:
    owner = ctx.identity(Signer.OWNER)
    return [
        ctx.credentials.signature_for("addPerm"),
        owner.user_id,
        ctx.settings.perm_cid,
        ctx.settings.perm_operation,
        roles_json(ctx.settings.perm_roles),
    ]


def _check_perm(ctx: BuildContext) -> list[str]:
    requester = ctx.identity(Signer.REQUESTER)
    return [
        ctx.credentials.signature_for("checkPerm"),
        ctx.settings.perm_operation,
        requester.user_id,
        ctx.settings.resource_cid,
    ]


def _trace_cid(ctx: BuildContext) -> list[str]:
    return [ctx.settings.trace_cid]


def _register(ctx: BuildContext) -> list[str]:
    pem = ctx.unique.registration_pem(ctx.credentials.template_public_key, ctx.tx_index)
    role = REGISTER_ROLES[ctx.tx_index % len(REGISTER_ROLES)]
    return [public_key_user_id(pem), pem, role]


def _query_user(ctx: BuildContext) -> list[str]:
    return [ctx.identity(Signer.OWNER).user_id]


OPERATION_CATALOGUE: dict[str, OperationDescriptor] = {
    descriptor.name: descriptor
    for descriptor in (
        OperationDescriptor(
            name="addResource",
            function="AddResource",
            kind=OperationKind.CACHED_SIGNATURE,
            build=_add_resource,
            signer=Signer.OWNER,
            signed_resource=lambda settings: "",
        ),
        OperationDescriptor(
            name="addPerm",
            function="AddPerm",
            kind=OperationKind.CACHED_SIGNATURE,
            build=_add_perm,
            signer=Signer.OWNER,
            signed_resource=lambda settings: settings.perm_cid,
        ),
        OperationDescriptor(
            name="checkPerm",
            function="CheckPerm",
            kind=OperationKind.CACHED_SIGNATURE,
            build=_check_perm,
            signer=Signer.REQUESTER,
            signed_resource=lambda settings: settings.resource_cid,
        ),
        OperationDescriptor(
            name="traceCid",
            function="TraceCid",
            kind=OperationKind.QUERY,
            build=_trace_cid,
        ),
        OperationDescriptor(
            name="queryCid",
            function="QueryCid",
            kind=OperationKind.QUERY,
            build=_trace_cid,
        ),
        OperationDescriptor(
            name="register",
            function="Register",
            kind=OperationKind.PER_CALL,
            build=_register,
        ),
        OperationDescriptor(
            name="queryUser",
            function="QueryUserID",
            kind=OperationKind.QUERY,
            build=_query_user,
            signer=Signer.OWNER,
        ),
    )
}


def build_descriptors(settings: RoundSettings) -> list[OperationDescriptor]:
    """Descriptors for every operation with a positive weight, in table order."""
    descriptors = []
    for name, weight in settings.operation_weights.items():
        if weight <= 0:
            continue
        descriptors.append(OPERATION_CATALOGUE[name].with_weight(weight))
    return descriptors


def required_identities(
    settings: RoundSettings, descriptors: list[OperationDescriptor]
) -> list[IdentitySource]:
    names: list[str] = []
    for descriptor in descriptors:
        if descriptor.signer is None:
            continue
        name = descriptor.signer.identity_name(settings)
        if name not in names:
            names.append(name)
    return [IdentitySource.in_directory(settings.identity_dir, name) for name in names]


def signing_plan(
    settings: RoundSettings, descriptors: list[OperationDescriptor]
) -> list[SigningTask]:
    return [
        SigningTask(
            operation=descriptor.name,
            identity=descriptor.signer.identity_name(settings),
            resource=descriptor.signed_resource(settings),
        )
        for descriptor in descriptors
        if descriptor.kind is OperationKind.CACHED_SIGNATURE
    ]


def needs_registration_template(descriptors: list[OperationDescriptor]) -> bool:
    return any(d.kind is OperationKind.PER_CALL for d in descriptors)


__all__ = [
    "BuildContext",
    "OPERATION_CATALOGUE",
    "OperationDescriptor",
    "OperationKind",
    "REGISTER_ROLES",
    "Signer",
    "build_descriptors",
    "needs_registration_template",
    "required_identities",
    "roles_json",
    "signing_plan",
]
