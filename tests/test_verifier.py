"""
Unit tests for proof verification.
"""

import json

import pytest

from badgeforge.credential import assemble, attach_proof
from badgeforge.errors import VerificationError
from badgeforge.keys import load_ed25519_key, load_public_key, load_rsa_key
from badgeforge.proof import ProofStrategy, SigningScope, get_signer
from badgeforge.verifier import verify_credential, verify_credential_json


def _sign(document, key, strategy, scope=SigningScope.DOCUMENT, message=None):
    proof = get_signer(strategy, scope=scope, message=message).sign(document, key)
    return attach_proof(document, proof).to_dict()


@pytest.fixture
def document(organization, recipient):
    return assemble(organization, recipient)


@pytest.fixture
def ed25519_signed(document, ed25519_key_path):
    return _sign(document, load_ed25519_key(ed25519_key_path), ProofStrategy.EDDSA_RDFC_2022)


@pytest.fixture
def rsa_signed(document, rsa_key_path):
    return _sign(document, load_rsa_key(rsa_key_path), ProofStrategy.RS256_JWS)


class TestDataIntegrityVerification:
    """Tests for Ed25519 DataIntegrityProof verification."""

    def test_valid(self, ed25519_signed, ed25519_public_key_path):
        assert verify_credential(ed25519_signed, load_public_key(ed25519_public_key_path))

    def test_tampered_document(self, ed25519_signed, ed25519_public_key_path):
        """Any change to the signed content breaks the proof."""
        ed25519_signed["name"] = "Mallory"
        with pytest.raises(VerificationError, match="does not match"):
            verify_credential(ed25519_signed, load_public_key(ed25519_public_key_path))

    def test_wrong_key(self, ed25519_signed, tmp_path):
        from badgeforge.keys import generate_keypair

        _, other_public = generate_keypair(tmp_path / "other")
        with pytest.raises(VerificationError):
            verify_credential(ed25519_signed, load_public_key(other_public))

    def test_embedded_public_key(self, organization, recipient, ed25519_key_path, ed25519_public_key_path):
        """Without an explicit key, issuer.public_key is used."""
        organization["issuer"]["public_key"] = str(ed25519_public_key_path)
        signed = _sign(
            assemble(organization, recipient), load_ed25519_key(ed25519_key_path), ProofStrategy.EDDSA_RDFC_2022
        )
        assert verify_credential(signed)

    def test_no_key_available(self, ed25519_signed):
        with pytest.raises(VerificationError, match="No public key"):
            verify_credential(ed25519_signed)

    def test_detached_message(self, document, ed25519_key_path, ed25519_public_key_path):
        signed = _sign(
            document,
            load_ed25519_key(ed25519_key_path),
            ProofStrategy.EDDSA_RDFC_2022,
            scope=SigningScope.MESSAGE,
            message=b"message.bin contents",
        )
        public_key = load_public_key(ed25519_public_key_path)
        assert verify_credential(signed, public_key, message=b"message.bin contents")
        with pytest.raises(VerificationError):
            verify_credential(signed, public_key, message=b"other")
        with pytest.raises(VerificationError, match="message"):
            verify_credential(signed, public_key)

    def test_key_type_mismatch(self, ed25519_signed, rsa_public_key_path):
        with pytest.raises(VerificationError, match="Ed25519"):
            verify_credential(ed25519_signed, load_public_key(rsa_public_key_path))


class TestJwsVerification:
    """Tests for RS256 JWS proof verification."""

    def test_valid(self, rsa_signed, rsa_public_key_path):
        assert verify_credential(rsa_signed, load_public_key(rsa_public_key_path))

    def test_tampered_document(self, rsa_signed, rsa_public_key_path):
        """The JWS payload must match the credential it is attached to."""
        rsa_signed["validFrom"] = "2030-01-01T00:00:00Z"
        with pytest.raises(VerificationError, match="payload"):
            verify_credential(rsa_signed, load_public_key(rsa_public_key_path))

    def test_tampered_signature(self, rsa_signed, rsa_public_key_path):
        header, payload, signature = rsa_signed["proof"]["proofValue"].split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        rsa_signed["proof"]["proofValue"] = ".".join([header, payload, flipped])
        with pytest.raises(VerificationError):
            verify_credential(rsa_signed, load_public_key(rsa_public_key_path))

    def test_detached(self, document, rsa_key_path, rsa_public_key_path):
        signed = _sign(
            document, load_rsa_key(rsa_key_path), ProofStrategy.RS256_JWS, scope=SigningScope.MESSAGE, message=b"m"
        )
        assert verify_credential(signed, load_public_key(rsa_public_key_path), message=b"m")
        with pytest.raises(VerificationError):
            verify_credential(signed, load_public_key(rsa_public_key_path), message=b"n")


class TestStructuralChecks:
    """Tests for proof presence and metadata."""

    def test_no_proof(self, document, ed25519_public_key_path):
        with pytest.raises(VerificationError, match="no proof"):
            verify_credential(document, load_public_key(ed25519_public_key_path))

    def test_verification_method_mismatch(self, ed25519_signed, ed25519_public_key_path):
        ed25519_signed["proof"]["verificationMethod"] = "https://other.example"
        with pytest.raises(VerificationError, match="verificationMethod"):
            verify_credential(ed25519_signed, load_public_key(ed25519_public_key_path))

    @pytest.mark.parametrize("issuer", [None, "https://example.org/issuer", {"name": "No id"}, {"id": ""}])
    def test_issuer_without_id(self, ed25519_signed, ed25519_public_key_path, issuer):
        """A proof with no verificationMethod cannot match a missing issuer id."""
        del ed25519_signed["proof"]["verificationMethod"]
        if issuer is None:
            del ed25519_signed["issuer"]
        else:
            ed25519_signed["issuer"] = issuer
        with pytest.raises(VerificationError, match="issuer.id"):
            verify_credential(ed25519_signed, load_public_key(ed25519_public_key_path))

    def test_not_an_object(self, ed25519_public_key_path):
        with pytest.raises(VerificationError, match="JSON object"):
            verify_credential(["not", "a", "credential"], load_public_key(ed25519_public_key_path))

    def test_unknown_proof_type(self, ed25519_signed, ed25519_public_key_path):
        ed25519_signed["proof"]["type"] = "BbsBlsSignature2020"
        with pytest.raises(VerificationError, match="Unsupported proof type"):
            verify_credential(ed25519_signed, load_public_key(ed25519_public_key_path))

    def test_json_entry_point(self, ed25519_signed, ed25519_public_key_path):
        public_key = load_public_key(ed25519_public_key_path)
        assert verify_credential_json(json.dumps(ed25519_signed), public_key)
        with pytest.raises(VerificationError):
            verify_credential_json("{not json", public_key)
