"""Cryptographic identity, signing, and encryption using PyNaCl.

Each node has:
- Ed25519 signing key (identity + envelope and card signatures)
- Curve25519 key derived from Ed25519 (for encryption via NaCl boxes)

The public identifier is the hex-encoded Ed25519 verify key. Because the
Curve25519 key is derived from it, any public identifier is also an
encryption address.
"""

import threading
from typing import Optional

from nacl.encoding import HexEncoder
from nacl.exceptions import BadSignatureError, CryptoError
from nacl.public import Box, PublicKey
from nacl.signing import SigningKey, VerifyKey
from nacl.utils import random

from .errors import DecryptionError, KeyGenerationError, NotReadyError
from .models import AgentCard, task_topic

SEED_SIZE = 32


class Identity:
    """A node's cryptographic identity.

    The private seed is held in a mutable buffer so :meth:`wipe` can zero it.
    Private-key operations build a transient ``SigningKey`` under a lock, so an
    operation racing with ``wipe`` either finishes with the intact key or
    raises ``NotReadyError``.
    """

    def __init__(self, seed: bytes):
        if len(seed) != SEED_SIZE:
            raise ValueError(f"seed must be {SEED_SIZE} bytes")
        self._seed = bytearray(seed)
        self._lock = threading.Lock()
        self._wiped = False
        signing_key = SigningKey(bytes(self._seed))
        self.verify_key = signing_key.verify_key
        self.encrypt_public = self.verify_key.to_curve25519_public_key()

    @classmethod
    def generate(cls) -> "Identity":
        try:
            seed = random(SEED_SIZE)
        except (CryptoError, OSError, RuntimeError) as e:
            raise KeyGenerationError(f"Entropy source failed: {e}") from e
        return cls(seed)

    @property
    def public_id(self) -> str:
        return self.verify_key.encode(encoder=HexEncoder).decode()

    @property
    def encrypt_pubkey_hex(self) -> str:
        return self.encrypt_public.encode(encoder=HexEncoder).decode()

    @property
    def wiped(self) -> bool:
        return self._wiped

    def _signing_key(self) -> SigningKey:
        # Caller holds self._lock.
        if self._wiped:
            raise NotReadyError("Identity key material has been wiped")
        return SigningKey(bytes(self._seed))

    def sign(self, data: bytes) -> str:
        """Sign data, return hex signature."""
        with self._lock:
            signed = self._signing_key().sign(data)
        return HexEncoder.encode(signed.signature).decode()

    @staticmethod
    def verify(public_id: str, data: bytes, signature_hex: Optional[str]) -> bool:
        """Verify a hex signature against a hex public identifier."""
        if not signature_hex:
            return False
        try:
            vk = VerifyKey(public_id.encode(), encoder=HexEncoder)
            vk.verify(data, HexEncoder.decode(signature_hex.encode()))
            return True
        except (BadSignatureError, ValueError, TypeError):
            return False

    @staticmethod
    def curve_key_for(public_id: str) -> PublicKey:
        vk = VerifyKey(public_id.encode(), encoder=HexEncoder)
        return vk.to_curve25519_public_key()

    def build_card(
        self,
        name: str,
        description: str,
        capabilities: Optional[list[str]] = None,
        encryption_required: bool = False,
    ) -> AgentCard:
        """Build the signed AgentCard. Pure and idempotent for a given identity."""
        card = AgentCard(
            name=name,
            description=description,
            public_key=self.public_id,
            topic=task_topic(self.public_id),
            capabilities=list(capabilities or []),
            encryption_key=self.encrypt_pubkey_hex,
            encryption_required=encryption_required,
        )
        card.signature = self.sign(card.signing_bytes())
        return card

    @staticmethod
    def verify_card(card: AgentCard) -> bool:
        return Identity.verify(card.public_key, card.signing_bytes(), card.signature)

    def encrypt_for(self, peer_id: str, plaintext: bytes) -> tuple[bytes, bytes]:
        """Encrypt for a peer's public identifier. Returns ``(nonce, ciphertext)``."""
        peer_key = self.curve_key_for(peer_id)
        with self._lock:
            box = Box(self._signing_key().to_curve25519_private_key(), peer_key)
            encrypted = box.encrypt(plaintext)
        return encrypted.nonce, encrypted.ciphertext

    def decrypt_from(self, peer_id: str, nonce: bytes, ciphertext: bytes) -> bytes:
        """Decrypt data a peer sent us."""
        try:
            peer_key = self.curve_key_for(peer_id)
        except (CryptoError, ValueError, TypeError) as e:
            raise DecryptionError(f"Invalid sender key: {e}") from e
        with self._lock:
            box = Box(self._signing_key().to_curve25519_private_key(), peer_key)
            try:
                return box.decrypt(ciphertext, nonce)
            except (CryptoError, ValueError, TypeError) as e:
                raise DecryptionError(f"Failed to decrypt: {e}") from e

    def wipe(self) -> bool:
        """Zero the private seed. Returns False if it was already wiped."""
        with self._lock:
            if self._wiped:
                return False
            for i in range(len(self._seed)):
                self._seed[i] = 0
            self._wiped = True
            return True
