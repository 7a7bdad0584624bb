# tests/test_credential.py
"""
Test suite for credential assembly.

Tests cover:
- Skeleton and shallow merge policy
- Private key stripping and public key inlining
- Required field validation
- Freezing of signed credentials
"""

import json

import pytest

from badgeforge.credential import (
    CONTEXTS,
    REQUIRED_FIELDS,
    SignedCredential,
    assemble,
    attach_proof,
    base_metadata,
    private_key_path,
    validate,
)
from badgeforge.errors import KeyLoadError, MissingFieldError


# =============================================================================
# Assembly
# =============================================================================


class TestAssemble:
    """Tests for assemble()."""

    def test_skeleton_present(self, organization, recipient):
        document = assemble(organization, recipient)
        assert document["@context"] == list(CONTEXTS)
        assert document["type"] == ["VerifiableCredential", "OpenBadgeCredential"]
        assert document["credentialSchema"][0]["type"] == "1EdTechJsonSchemaValidator2019"

    def test_fragments_merged(self, organization, recipient):
        document = assemble(organization, recipient)
        assert document["issuer"]["id"] == "https://example.org/issuer"
        assert document["name"] == "Ada"

    def test_later_fragment_wins(self):
        """Recipient keys replace organization keys of the same name."""
        document = assemble({"name": "Org name", "x": 1}, {"name": "Badge name"})
        assert document["name"] == "Badge name"
        assert document["x"] == 1

    def test_merge_is_shallow(self):
        """Nested objects are replaced wholesale, not merged."""
        document = assemble(
            {"credentialSubject": {"a": 1, "b": 2}},
            {"credentialSubject": {"a": 3}},
        )
        assert document["credentialSubject"] == {"a": 3}

    def test_fragment_overrides_skeleton(self):
        document = assemble({}, {"type": ["VerifiableCredential"]})
        assert document["type"] == ["VerifiableCredential"]

    def test_inputs_not_mutated(self, tmp_path):
        organization = {"issuer": {"id": "https://example.org", "private_key": "k.pem"}}
        assemble(organization, {})
        assert organization["issuer"]["private_key"] == "k.pem"

    def test_base_metadata_is_fresh(self):
        first = base_metadata()
        first["type"].append("Mutated")
        assert "Mutated" not in base_metadata()["type"]

    def test_custom_base(self):
        document = assemble({"a": 1}, {}, base={"@context": ["urn:ctx"]})
        assert document == {"@context": ["urn:ctx"], "a": 1}


class TestKeyReferences:
    """Tests for private key stripping and public key inlining."""

    def test_private_key_stripped(self, organization, recipient):
        organization["issuer"]["private_key"] = "/secret/issuer.pem"
        document = assemble(organization, recipient)
        assert "private_key" not in document["issuer"]
        assert "/secret/issuer.pem" not in json.dumps(document)

    def test_top_level_private_key_stripped(self, organization):
        document = assemble(organization, {"private_key": "/secret/other.pem"})
        assert "private_key" not in document

    def test_private_key_path(self, organization):
        assert private_key_path(organization) is None
        organization["issuer"]["private_key"] = "issuer.pem"
        assert private_key_path(organization) == "issuer.pem"

    def test_public_key_inlined(self, organization, ed25519_public_key_path):
        organization["issuer"]["public_key"] = str(ed25519_public_key_path)
        document = assemble(organization, {})
        assert document["issuer"]["public_key"] == ed25519_public_key_path.read_text()

    def test_public_key_relative_to_base_dir(self, organization, ed25519_public_key_path):
        organization["issuer"]["public_key"] = ed25519_public_key_path.name
        document = assemble(organization, {}, base_dir=ed25519_public_key_path.parent)
        assert document["issuer"]["public_key"].startswith("-----BEGIN PUBLIC KEY-----")

    def test_inline_pem_kept(self, organization, ed25519_public_key_path):
        pem = ed25519_public_key_path.read_text()
        organization["issuer"]["public_key"] = pem
        assert assemble(organization, {})["issuer"]["public_key"] == pem

    def test_invalid_inline_pem(self, organization):
        organization["issuer"]["public_key"] = "-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----\n"
        with pytest.raises(KeyLoadError, match="not a PEM public key"):
            assemble(organization, {})

    def test_private_key_file_as_public_key(self, organization, ed25519_key_path):
        """A public_key reference to the private key file is refused."""
        organization["issuer"]["public_key"] = str(ed25519_key_path)
        with pytest.raises(KeyLoadError, match="not a PEM public key") as exc_info:
            assemble(organization, {})
        assert "PRIVATE KEY" not in str(exc_info.value)

    def test_pasted_private_key_as_public_key(self, organization, ed25519_key_path):
        organization["issuer"]["public_key"] = ed25519_key_path.read_text()
        with pytest.raises(KeyLoadError, match="not a PEM public key"):
            assemble(organization, {})

    def test_non_string_public_key(self, organization):
        organization["issuer"]["public_key"] = {"kty": "OKP", "d": "secret"}
        with pytest.raises(KeyLoadError, match="file path or PEM"):
            assemble(organization, {})

    def test_missing_public_key_file(self, organization, tmp_path):
        organization["issuer"]["public_key"] = str(tmp_path / "gone.pem")
        with pytest.raises(KeyLoadError, match="gone.pem"):
            assemble(organization, {})


# =============================================================================
# Validation
# =============================================================================


class TestValidate:
    """Tests for validate()."""

    def test_complete_document(self):
        validate({name: "x" for name in REQUIRED_FIELDS})

    def test_reports_every_missing_field(self):
        """Missing {A, C} out of {A, B, C, D} reports exactly A and C."""
        with pytest.raises(MissingFieldError) as exc_info:
            validate({"B": 1, "D": 2}, required=["A", "B", "C", "D"])
        assert exc_info.value.fields == ["A", "C"]

    def test_default_required_fields(self, organization):
        document = assemble(organization, {"name": "Ada"})
        with pytest.raises(MissingFieldError) as exc_info:
            validate(document)
        assert exc_info.value.fields == ["id", "validFrom", "proof"]
        assert "id, validFrom, proof" in str(exc_info.value)


# =============================================================================
# Signed Credential
# =============================================================================


class TestSignedCredential:
    """Tests for attach_proof() and SignedCredential."""

    def test_attach_proof(self, organization, recipient):
        document = assemble(organization, recipient)
        signed = attach_proof(document, {"type": "DataIntegrityProof", "proofValue": "z1"})
        assert isinstance(signed, SignedCredential)
        assert signed.proof["proofValue"] == "z1"
        assert "proof" not in document

    def test_document_is_read_only(self, organization, recipient):
        signed = attach_proof(assemble(organization, recipient), {"proofValue": "z1"})
        with pytest.raises(TypeError):
            signed.document["name"] = "Mallory"

    def test_source_changes_do_not_leak_in(self, organization, recipient):
        document = assemble(organization, recipient)
        signed = attach_proof(document, {"proofValue": "z1"})
        document["issuer"]["id"] = "https://evil.example"
        assert signed.document["issuer"]["id"] == "https://example.org/issuer"

    def test_to_dict_is_a_copy(self, organization, recipient):
        signed = attach_proof(assemble(organization, recipient), {"proofValue": "z1"})
        copy = signed.to_dict()
        copy["proof"]["proofValue"] = "changed"
        assert signed.proof["proofValue"] == "z1"

    def test_to_json(self, organization, recipient):
        signed = attach_proof(assemble(organization, recipient), {"proofValue": "z1"})
        assert json.loads(signed.to_json()) == signed.to_dict()
        assert ", " not in signed.to_json()
