"""Tests for Identity: keys, signatures, cards and NaCl boxes."""

from unittest.mock import patch

import pytest
from nacl.exceptions import CryptoError

from agentlinkd.crypto import Identity
from agentlinkd.errors import DecryptionError, KeyGenerationError, NotReadyError
from agentlinkd.models import task_topic


class TestIdentity:
    def test_public_id_is_hex_verify_key(self, identity: Identity) -> None:
        assert len(identity.public_id) == 64
        int(identity.public_id, 16)

    def test_generated_identities_differ(self) -> None:
        assert Identity.generate().public_id != Identity.generate().public_id

    def test_same_seed_same_identity(self) -> None:
        seed = bytes(range(32))
        assert Identity(seed).public_id == Identity(seed).public_id

    def test_rejects_short_seed(self) -> None:
        with pytest.raises(ValueError):
            Identity(b"short")

    def test_entropy_failure(self) -> None:
        with patch("agentlinkd.crypto.random", side_effect=OSError("no entropy")):
            with pytest.raises(KeyGenerationError):
                Identity.generate()


class TestSignatures:
    def test_sign_and_verify(self, identity: Identity) -> None:
        sig = identity.sign(b"hello")
        assert Identity.verify(identity.public_id, b"hello", sig)

    def test_verify_rejects_tampered_data(self, identity: Identity) -> None:
        sig = identity.sign(b"hello")
        assert not Identity.verify(identity.public_id, b"hellO", sig)

    def test_verify_rejects_other_key(self, identity: Identity) -> None:
        other = Identity.generate()
        assert not Identity.verify(other.public_id, b"hello", identity.sign(b"hello"))

    @pytest.mark.parametrize("sig", [None, "", "zz", "00" * 64])
    def test_verify_rejects_garbage_signature(self, identity: Identity, sig) -> None:
        assert not Identity.verify(identity.public_id, b"hello", sig)

    def test_verify_rejects_garbage_key(self, identity: Identity) -> None:
        assert not Identity.verify("not-hex", b"hello", identity.sign(b"hello"))


class TestAgentCard:
    def test_card_fields(self, identity: Identity) -> None:
        card = identity.build_card("alice", "test agent", ["text"], encryption_required=True)
        assert card.public_key == identity.public_id
        assert card.topic == task_topic(identity.public_id)
        assert card.encryption_key == identity.encrypt_pubkey_hex
        assert card.encryption_required is True
        assert card.capabilities == ["text"]

    def test_card_is_signed(self, identity: Identity) -> None:
        card = identity.build_card("alice", "test agent")
        assert Identity.verify_card(card)

    def test_build_is_idempotent(self, identity: Identity) -> None:
        assert identity.build_card("alice", "x") == identity.build_card("alice", "x")

    def test_edited_card_fails_verification(self, identity: Identity) -> None:
        card = identity.build_card("alice", "test agent")
        card.name = "mallory"
        assert not Identity.verify_card(card)


class TestEncryption:
    def test_round_trip(self) -> None:
        alice, bob = Identity.generate(), Identity.generate()
        nonce, ciphertext = alice.encrypt_for(bob.public_id, b"secret")
        assert ciphertext != b"secret"
        assert bob.decrypt_from(alice.public_id, nonce, ciphertext) == b"secret"

    def test_third_party_cannot_decrypt(self) -> None:
        alice, bob, eve = Identity.generate(), Identity.generate(), Identity.generate()
        nonce, ciphertext = alice.encrypt_for(bob.public_id, b"secret")
        with pytest.raises(DecryptionError):
            eve.decrypt_from(alice.public_id, nonce, ciphertext)

    def test_tampered_ciphertext(self) -> None:
        alice, bob = Identity.generate(), Identity.generate()
        nonce, ciphertext = alice.encrypt_for(bob.public_id, b"secret")
        tampered = bytes([ciphertext[0] ^ 1]) + ciphertext[1:]
        with pytest.raises(DecryptionError):
            bob.decrypt_from(alice.public_id, nonce, tampered)

    def test_invalid_sender_key(self, identity: Identity) -> None:
        with pytest.raises(DecryptionError):
            identity.decrypt_from("not-a-key", b"\x00" * 24, b"x" * 32)

    def test_curve_conversion_failure_is_decryption_error(self, identity: Identity) -> None:
        with patch.object(Identity, "curve_key_for", side_effect=CryptoError("bad point")):
            with pytest.raises(DecryptionError):
                identity.decrypt_from(identity.public_id, b"\x00" * 24, b"x" * 32)


class TestWipe:
    def test_wipe_blocks_private_operations(self, identity: Identity) -> None:
        assert identity.wipe() is True
        assert identity.wiped
        with pytest.raises(NotReadyError):
            identity.sign(b"hello")
        with pytest.raises(NotReadyError):
            identity.encrypt_for(Identity.generate().public_id, b"x")

    def test_wipe_zeroes_seed(self, identity: Identity) -> None:
        identity.wipe()
        assert bytes(identity._seed) == b"\x00" * 32

    def test_wipe_is_idempotent(self, identity: Identity) -> None:
        identity.wipe()
        assert identity.wipe() is False

    def test_public_id_survives_wipe(self, identity: Identity) -> None:
        public_id = identity.public_id
        identity.wipe()
        assert identity.public_id == public_id
