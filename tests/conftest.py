"""
Shared fixtures: RSA identities on disk, round arguments and a recording submitter.
"""

from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

OWNER_ID = "9f2c0d4b7e1a4c55b3a1e0f6d2c8b7a4e9f1d3c5b7a9e2f4d6c8b0a1e3f5d7c9"
REQUESTER_ID = "1a3c5e7f9b2d4f6a8c0e2b4d6f8a0c2e4b6d8f0a2c4e6b8d0f2a4c6e8b0d2f4a"


def write_identity(directory: Path, name: str, user_id: str, key: rsa.RSAPrivateKey) -> None:
    (directory / f"{name}_id.txt").write_text(user_id + "\n", encoding="utf-8")
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    (directory / f"{name}_private_key.pem").write_bytes(pem)


class RecordingSubmitter:
    """Async submission capability that remembers every request."""

    def __init__(self, result=None, error=None):
        self.result = {"status": "VALID"} if result is None else result
        self.error = error
        self.requests = []

    async def __call__(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def rsa_keys():
    return {
        "user_1": rsa.generate_private_key(public_exponent=65537, key_size=2048),
        "user_2": rsa.generate_private_key(public_exponent=65537, key_size=2048),
    }


@pytest.fixture
def identity_dir(tmp_path, rsa_keys):
    directory = tmp_path / "register"
    directory.mkdir()
    write_identity(directory, "user_1", OWNER_ID, rsa_keys["user_1"])
    write_identity(directory, "user_2", REQUESTER_ID, rsa_keys["user_2"])
    return directory


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "latency"


@pytest.fixture
def round_arguments(identity_dir, output_dir):
    return {
        "identityDir": str(identity_dir),
        "outputDir": str(output_dir),
        "label": "mix-test",
    }


@pytest.fixture
def make_submitter():
    return RecordingSubmitter


@pytest.fixture
def submitter():
    return RecordingSubmitter()
