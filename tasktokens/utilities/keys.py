import base64
import hashlib
import hmac
from functools import lru_cache
from typing import Optional, Tuple
import nacl.bindings
from xrpl.constants import CryptoAlgorithm
from xrpl.core import addresscodec
from xrpl.core.keypairs import derive_keypair, sign, is_valid_message
from loguru import logger
from tasktokens.utilities.exceptions import CryptoError, IdentityUnavailableError

ED25519_PREFIX = 0xED
SEED_LENGTH = 16  # bytes of entropy in an XRPL family seed

def _strip_ed_prefix(key_bytes: bytes) -> bytes:
    """Remove the XRPL ED prefix from a 33-byte ed25519 key"""
    if len(key_bytes) == 33 and key_bytes[0] == ED25519_PREFIX:
        return key_bytes[1:]
    return key_bytes

class KeyDeriver:
    """Derives per-protocol keys from the user's wallet seed"""

    def __init__(self, wallet_seed: Optional[str]):
        self._wallet_seed = wallet_seed

    @property
    def has_identity(self) -> bool:
        return self._wallet_seed is not None

    def _require_seed(self, operation: str) -> str:
        if self._wallet_seed is None:
            raise IdentityUnavailableError(operation)
        return self._wallet_seed

    @staticmethod
    def _get_raw_entropy(wallet_seed: str) -> bytes:
        """Returns the raw entropy bytes from the specified wallet secret"""
        decoded_seed = addresscodec.decode_seed(wallet_seed)
        return decoded_seed[0]

    @property
    def identity_key(self) -> str:
        """The root public key identifying this user on the ledger"""
        seed = self._require_seed("identity_key")
        try:
            public_key, _ = derive_keypair(seed)
            return public_key
        except Exception as e:
            logger.error(f"KeyDeriver.identity_key: Failed to derive identity key: {e}")
            raise CryptoError(f"Failed to derive identity key: {e}", "identity_key") from e

    def derive_child_keypair(self, protocol_id: str, key_id: str) -> Tuple[str, str]:
        """
        Derive the ed25519 keypair used for a protocol/key context

        Args:
            protocol_id: Context in which the key is used
            key_id: Key index within the protocol

        Returns:
            Tuple of (public key hex, private key hex), both ED-prefixed

        Raises:
            IdentityUnavailableError: If no wallet seed is configured
            CryptoError: If the wallet seed is invalid
        """
        seed = self._require_seed("derive_child_keypair")
        try:
            return _derive_child_keypair(seed, protocol_id, key_id)
        except Exception as e:
            logger.error(f"KeyDeriver.derive_child_keypair: Failed to derive key for '{protocol_id}'/'{key_id}': {e}")
            raise CryptoError(f"Failed to derive key: {e}", "derive_child_keypair") from e

    def get_symmetric_key(self, protocol_id: str, key_id: str) -> bytes:
        """
        Get the Fernet key for a protocol/key context.
        The key comes from an X25519 exchange of the child key with itself, so only its owner can derive it.
        """
        public_key, private_key = self.derive_child_keypair(protocol_id, key_id)
        shared_secret = self._derive_shared_secret(public_key, private_key)
        context = f"{protocol_id}-{key_id}".encode()
        return base64.urlsafe_b64encode(hashlib.sha256(shared_secret + context).digest())

    @staticmethod
    def _derive_shared_secret(public_key_hex: str, private_key_hex: str) -> bytes:
        """
        Derive a shared secret using ECDH
        Args:
            public_key_hex: their public key in hex
            private_key_hex: our ED-prefixed private key in hex
        Returns:
            bytes: The shared secret
        """
        private_key_bytes = _strip_ed_prefix(bytes.fromhex(private_key_hex))
        public_key_bytes = _strip_ed_prefix(bytes.fromhex(public_key_hex))

        # NaCl secret keys are the 32-byte seed followed by the public key
        own_public_key = nacl.bindings.crypto_sign_seed_keypair(private_key_bytes)[0]
        private_key_combined = private_key_bytes + own_public_key

        # Convert ED25519 keys to Curve25519
        private_curve = nacl.bindings.crypto_sign_ed25519_sk_to_curve25519(private_key_combined)
        public_curve = nacl.bindings.crypto_sign_ed25519_pk_to_curve25519(public_key_bytes)

        return nacl.bindings.crypto_scalarmult(private_curve, public_curve)

    def sign(self, message: bytes, protocol_id: str, key_id: str) -> bytes:
        """Sign a message with the child key of a protocol/key context"""
        _, private_key = self.derive_child_keypair(protocol_id, key_id)
        try:
            return bytes.fromhex(sign(message, private_key))
        except Exception as e:
            logger.error(f"KeyDeriver.sign: Failed to sign message: {e}")
            raise CryptoError(f"Failed to sign message: {e}", "sign") from e

    @staticmethod
    def verify(message: bytes, signature: bytes, public_key: str) -> bool:
        """Check a signature against an ED-prefixed public key"""
        try:
            return is_valid_message(message, signature, public_key)
        except Exception as e:
            logger.debug(f"KeyDeriver.verify: Signature check failed: {e}")
            return False

@lru_cache(maxsize=64)
def _derive_child_keypair(wallet_seed: str, protocol_id: str, key_id: str) -> Tuple[str, str]:
    root_entropy = KeyDeriver._get_raw_entropy(wallet_seed)
    invoice = f"{protocol_id}-{key_id}".encode()
    child_entropy = hmac.new(root_entropy, invoice, hashlib.sha256).digest()[:SEED_LENGTH]
    child_seed = addresscodec.encode_seed(child_entropy, CryptoAlgorithm.ED25519)
    return derive_keypair(child_seed)
