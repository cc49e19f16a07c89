from __future__ import annotations

import base64
import hashlib
import itertools
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

LOGGER = logging.getLogger("acmc_bench.credentials")

ID_FILE_SUFFIX = "_id.txt"
KEY_FILE_SUFFIX = "_private_key.pem"

TEMPLATE_KEY_BITS = 2048


class IdentityLoadError(RuntimeError):
    """Raised when signing identities cannot be loaded at setup."""


@dataclass(frozen=True)
class IdentitySource:
    """Location of one identity's id file and PEM private key."""

    name: str
    id_path: Path
    key_path: Path

    @classmethod
    def in_directory(cls, directory: Path | str, name: str) -> "IdentitySource":
        directory = Path(directory)
        return cls(
            name=name,
            id_path=directory / f"{name}{ID_FILE_SUFFIX}",
            key_path=directory / f"{name}{KEY_FILE_SUFFIX}",
        )


@dataclass(frozen=True)
class Identity:
    name: str
    user_id: str
    private_key: rsa.RSAPrivateKey | None = field(default=None, repr=False)

    def sign(self, payload: str) -> str:
        if self.private_key is None:
            raise IdentityLoadError(f"identity {self.name!r} has no signing key")
        return sign_payload(self.private_key, payload)


def sign_payload(private_key: rsa.RSAPrivateKey, payload: str) -> str:
    """RSA PKCS#1 v1.5 over SHA-256, base64 encoded, as the contract verifies."""
    signature = private_key.sign(
        payload.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256()
    )
    return base64.b64encode(signature).decode("ascii")


def load_identity(source: IdentitySource) -> Identity:
    try:
        user_id = source.id_path.read_text(encoding="utf-8").strip()
        key_bytes = source.key_path.read_bytes()
    except OSError as exc:
        raise IdentityLoadError(
            f"identity {source.name!r} files missing: {exc.filename}"
        ) from exc

    if not user_id:
        raise IdentityLoadError(f"identity {source.name!r} has an empty id file")

    try:
        private_key = serialization.load_pem_private_key(key_bytes, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise IdentityLoadError(
            f"identity {source.name!r} private key could not be parsed"
        ) from exc
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise IdentityLoadError(f"identity {source.name!r} key is not an RSA key")

    return Identity(name=source.name, user_id=user_id, private_key=private_key)


def generate_template_public_key(key_size: int = TEMPLATE_KEY_BITS) -> str:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return pem.decode("ascii")


def public_key_user_id(public_key_pem: str) -> str:
    return hashlib.sha256(public_key_pem.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SigningTask:
    """A fixed payload signed once at setup and reused for every call."""

    operation: str
    identity: str
    resource: str = ""

    def payload_for(self, identity: Identity) -> str:
        return identity.user_id + self.resource


class CredentialSet:
    """Worker-local identities and the signatures precomputed for them."""

    def __init__(
        self,
        identities: Mapping[str, Identity],
        signatures: Mapping[str, str],
        payloads: Mapping[str, str],
        template_public_key: str | None = None,
    ) -> None:
        self._identities = dict(identities)
        self._signatures = dict(signatures)
        self._payloads = dict(payloads)
        self._template_public_key = template_public_key

    @classmethod
    def initialize(
        cls,
        sources: Iterable[IdentitySource],
        signing_plan: Iterable[SigningTask] = (),
        with_registration_template: bool = False,
    ) -> "CredentialSet":
        identities = {source.name: load_identity(source) for source in sources}

        signatures: dict[str, str] = {}
        payloads: dict[str, str] = {}
        for task in signing_plan:
            identity = identities.get(task.identity)
            if identity is None:
                raise IdentityLoadError(
                    f"operation {task.operation!r} needs unknown identity {task.identity!r}"
                )
            payload = task.payload_for(identity)
            signatures[task.operation] = identity.sign(payload)
            payloads[task.operation] = payload

        template = generate_template_public_key() if with_registration_template else None

        LOGGER.info(
            "Loaded %d identit%s, precomputed %d signature(s)%s",
            len(identities),
            "y" if len(identities) == 1 else "ies",
            len(signatures),
            ", generated registration key template" if template else "",
        )
        return cls(identities, signatures, payloads, template)

    def identity(self, name: str) -> Identity:
        try:
            return self._identities[name]
        except KeyError:
            raise IdentityLoadError(f"identity {name!r} was not loaded") from None

    def signature_for(self, operation: str, payload: str | None = None) -> str:
        """Return the cached signature; a differing payload is never re-signed."""
        try:
            signature = self._signatures[operation]
        except KeyError:
            raise KeyError(f"no precomputed signature for {operation!r}") from None
        if payload is not None and payload != self._payloads[operation]:
            raise ValueError(
                f"payload for {operation!r} differs from the precomputed one"
            )
        return signature

    @property
    def template_public_key(self) -> str:
        if self._template_public_key is None:
            raise IdentityLoadError("registration key template was not generated")
        return self._template_public_key


_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


class UniqueValueGenerator:
    """Identifiers scoped by worker index and a per-worker counter, plus a random suffix."""

    def __init__(
        self,
        worker_index: int,
        prefix: str = "QmMix",
        rng: random.Random | None = None,
    ) -> None:
        self._worker_index = worker_index
        self._prefix = prefix
        self._rng = rng or random.Random()
        self._counter = itertools.count(start=1)

    @property
    def worker_index(self) -> int:
        return self._worker_index

    def random_suffix(self) -> str:
        return _base36(self._rng.getrandbits(64))

    def mint(self, counter: int) -> str:
        return f"{self._prefix}_{self._worker_index}_{counter}_{self.random_suffix()}"

    def next_cid(self) -> str:
        return self.mint(next(self._counter))

    def registration_pem(self, template_pem: str, tx_index: int) -> str:
        # Content after the END line is ignored by PEM decoding but changes the hash.
        return (
            f"{template_pem}\n# worker{self._worker_index}_tx{tx_index}_{self.random_suffix()}"
        )


__all__ = [
    "CredentialSet",
    "Identity",
    "IdentityLoadError",
    "IdentitySource",
    "SigningTask",
    "UniqueValueGenerator",
    "generate_template_public_key",
    "load_identity",
    "public_key_user_id",
    "sign_payload",
]
