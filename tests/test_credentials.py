"""
Tests for identity loading, precomputed signatures and unique values.
"""

import base64
import hashlib
import random

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from acmc_bench.credentials import (
    CredentialSet,
    IdentityLoadError,
    IdentitySource,
    SigningTask,
    UniqueValueGenerator,
    load_identity,
    public_key_user_id,
)

from conftest import OWNER_ID, REQUESTER_ID

CID = "QmdyzCHpa2vnn3zBvH1hfy4e5zdEuQGUvVfgtFfBnGFhKM"


def verify(public_key, payload, signature_b64):
    public_key.verify(
        base64.b64decode(signature_b64),
        payload.encode("utf-8"),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )


# =============================================================================
# Identity sources
# =============================================================================

class TestLoadIdentity:

    def test_reads_id_and_key(self, identity_dir):
        identity = load_identity(IdentitySource.in_directory(identity_dir, "user_1"))
        assert identity.user_id == OWNER_ID
        assert identity.private_key is not None

    def test_missing_files_are_fatal(self, tmp_path):
        with pytest.raises(IdentityLoadError, match="user_9"):
            load_identity(IdentitySource.in_directory(tmp_path, "user_9"))

    def test_unparseable_key_is_fatal(self, identity_dir):
        (identity_dir / "user_1_private_key.pem").write_text("not a key", encoding="utf-8")
        with pytest.raises(IdentityLoadError):
            load_identity(IdentitySource.in_directory(identity_dir, "user_1"))

    def test_empty_id_is_fatal(self, identity_dir):
        (identity_dir / "user_2_id.txt").write_text("  \n", encoding="utf-8")
        with pytest.raises(IdentityLoadError):
            load_identity(IdentitySource.in_directory(identity_dir, "user_2"))


# =============================================================================
# Credential cache
# =============================================================================

@pytest.fixture
def credentials(identity_dir):
    return CredentialSet.initialize(
        [
            IdentitySource.in_directory(identity_dir, "user_1"),
            IdentitySource.in_directory(identity_dir, "user_2"),
        ],
        [
            SigningTask("addResource", "user_1"),
            SigningTask("addPerm", "user_1", CID + "_1"),
            SigningTask("checkPerm", "user_2", CID),
        ],
    )


class TestCredentialSet:

    def test_signatures_verify_against_contract_payloads(self, credentials, rsa_keys):
        verify(rsa_keys["user_1"].public_key(), OWNER_ID, credentials.signature_for("addResource"))
        verify(rsa_keys["user_1"].public_key(), OWNER_ID + CID + "_1", credentials.signature_for("addPerm"))
        verify(rsa_keys["user_2"].public_key(), REQUESTER_ID + CID, credentials.signature_for("checkPerm"))

    def test_cached_signature_is_stable(self, credentials):
        first = credentials.signature_for("checkPerm")
        assert all(credentials.signature_for("checkPerm") == first for _ in range(50))

    def test_signing_is_deterministic_across_caches(self, credentials, identity_dir):
        again = CredentialSet.initialize(
            [IdentitySource.in_directory(identity_dir, "user_2")],
            [SigningTask("checkPerm", "user_2", CID)],
        )
        assert again.signature_for("checkPerm") == credentials.signature_for("checkPerm")

    def test_matching_payload_is_accepted(self, credentials):
        assert credentials.signature_for("checkPerm", REQUESTER_ID + CID)

    def test_different_payload_is_never_resigned(self, credentials):
        with pytest.raises(ValueError):
            credentials.signature_for("checkPerm", REQUESTER_ID + "QmOther")

    def test_unknown_operation(self, credentials):
        with pytest.raises(KeyError):
            credentials.signature_for("traceCid")

    def test_plan_for_unloaded_identity_is_fatal(self, identity_dir):
        with pytest.raises(IdentityLoadError):
            CredentialSet.initialize(
                [IdentitySource.in_directory(identity_dir, "user_1")],
                [SigningTask("checkPerm", "user_2", CID)],
            )

    def test_template_only_when_requested(self, credentials):
        with pytest.raises(IdentityLoadError):
            credentials.template_public_key

    def test_registration_template(self):
        creds = CredentialSet.initialize([], with_registration_template=True)
        assert creds.template_public_key.startswith("-----BEGIN PUBLIC KEY-----")

    def test_unknown_identity(self, credentials):
        with pytest.raises(IdentityLoadError):
            credentials.identity("user_3")


# =============================================================================
# Unique value generator
# =============================================================================

class TestUniqueValueGenerator:

    def test_same_counter_never_collides(self):
        generator = UniqueValueGenerator(worker_index=2, rng=random.Random(5))
        values = {generator.mint(1) for _ in range(10_000)}
        assert len(values) == 10_000

    def test_scoped_by_worker_and_counter(self):
        generator = UniqueValueGenerator(worker_index=4, prefix="QmMix")
        first = generator.next_cid()
        second = generator.next_cid()
        assert first.startswith("QmMix_4_1_")
        assert second.startswith("QmMix_4_2_")

    def test_workers_do_not_collide(self):
        a = UniqueValueGenerator(0, rng=random.Random(1))
        b = UniqueValueGenerator(1, rng=random.Random(1))
        assert not {a.next_cid() for _ in range(1_000)} & {b.next_cid() for _ in range(1_000)}

    def test_registration_pem_changes_user_id(self):
        template = "-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----\n"
        generator = UniqueValueGenerator(0)
        first = generator.registration_pem(template, 1)
        second = generator.registration_pem(template, 1)
        assert first.startswith(template)
        assert "# worker0_tx1_" in first
        assert public_key_user_id(first) != public_key_user_id(second)
        assert public_key_user_id(first) == hashlib.sha256(first.encode()).hexdigest()
