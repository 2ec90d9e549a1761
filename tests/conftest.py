import hashlib
import json
import os
import struct
from dataclasses import dataclass, field

import cbor2
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.hashes import SHA256

from quart_webauthn_mfa import InMemoryUserDatastore, hash_password
from quart_webauthn_mfa.app import create_app
from quart_webauthn_mfa.webauthn import base64url_to_bytes, bytes_to_base64url

RP_ID = "localhost"
ORIGIN = "https://localhost:5173"


def _encode_cose_public_key(public_key) -> bytes:
    numbers = public_key.public_numbers()
    return cbor2.dumps(
        {
            1: 2,  # kty: EC2
            3: -7,  # alg: ES256
            -1: 1,  # crv: P-256
            -2: numbers.x.to_bytes(32, "big"),
            -3: numbers.y.to_bytes(32, "big"),
        }
    )


def _client_data(kind, challenge, origin) -> bytes:
    return json.dumps(
        {"type": kind, "challenge": challenge, "origin": origin, "crossOrigin": False},
        separators=(",", ":"),
    ).encode("utf-8")


@dataclass
class SoftwareCredential:
    credential_id: bytes
    private_key: ec.EllipticCurvePrivateKey
    rp_id: str
    sign_count: int = 0


@dataclass
class SoftwareAuthenticator:
    """ES256 authenticator producing "none" attestations and real assertions."""

    credentials: dict = field(default_factory=dict)
    aaguid: bytes = b"\x00" * 16

    def make_credential(self, options: dict, origin: str = ORIGIN) -> dict:
        rp_id = options["rp"]["id"]
        private_key = ec.generate_private_key(ec.SECP256R1())
        credential_id = os.urandom(32)
        self.credentials[credential_id] = SoftwareCredential(
            credential_id=credential_id, private_key=private_key, rp_id=rp_id
        )

        client_data = _client_data("webauthn.create", options["challenge"], origin)
        cose_key = _encode_cose_public_key(private_key.public_key())
        auth_data = (
            hashlib.sha256(rp_id.encode("utf-8")).digest()
            + struct.pack(">BI", 0x45, 0)  # UP | UV | AT
            + self.aaguid
            + struct.pack(">H", len(credential_id))
            + credential_id
            + cose_key
        )
        attestation_object = cbor2.dumps(
            {"fmt": "none", "attStmt": {}, "authData": auth_data}
        )
        return {
            "id": bytes_to_base64url(credential_id),
            "rawId": bytes_to_base64url(credential_id),
            "type": "public-key",
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "attestationObject": bytes_to_base64url(attestation_object),
            },
        }

    def get_assertion(
        self, options: dict, origin: str = ORIGIN, credential_id=None, sign_count=None
    ) -> dict:
        if credential_id is None:
            for allowed in options.get("allowCredentials", []):
                candidate = base64url_to_bytes(allowed["id"])
                if candidate in self.credentials:
                    credential_id = candidate
                    break
        if credential_id is None:
            credential_id = next(iter(self.credentials))

        stored = self.credentials[credential_id]
        stored.sign_count = stored.sign_count + 1 if sign_count is None else sign_count

        client_data = _client_data("webauthn.get", options["challenge"], origin)
        auth_data = hashlib.sha256(stored.rp_id.encode("utf-8")).digest() + struct.pack(
            ">BI", 0x05, stored.sign_count
        )
        signature = stored.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(), ec.ECDSA(SHA256())
        )
        return {
            "id": bytes_to_base64url(credential_id),
            "rawId": bytes_to_base64url(credential_id),
            "type": "public-key",
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "authenticatorData": bytes_to_base64url(auth_data),
                "signature": bytes_to_base64url(signature),
                "userHandle": None,
            },
        }


@pytest.fixture
def datastore():
    return InMemoryUserDatastore()


@pytest.fixture
def app(datastore):
    app = create_app(
        {
            "SECRET_KEY": "test-secret",
            "TESTING": True,
            "WAN_RP_ID": RP_ID,
            "WAN_EXPECTED_ORIGIN": ORIGIN,
            "WAN_RP_NAME": "WebAuthn Demo",
        },
        datastore=datastore,
    )
    app.extensions["test_alice"] = datastore.create_user(
        username="alice", password=hash_password("correct-password")
    )
    app.extensions["test_bob"] = datastore.create_user(
        username="bob", password=hash_password("bob-password")
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def authenticator():
    return SoftwareAuthenticator()


async def login(client, username="alice", password="correct-password"):
    return await client.post(
        "/api/auth/login", json={"username": username, "password": password}
    )


async def register(client, authenticator, username="alice"):
    response = await client.post(
        "/api/auth/registration-options", json={"username": username}
    )
    options = await response.get_json()
    credential = authenticator.make_credential(options)
    return await client.post(
        "/api/auth/verify-registration",
        json={"username": username, "credential": credential},
    )


@pytest.fixture
def helpers():
    class Helpers:
        pass

    Helpers.login = staticmethod(login)
    Helpers.register = staticmethod(register)
    return Helpers
