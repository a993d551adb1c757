from typing import Protocol

class EncryptionProvider(Protocol):
    """Encrypts and decrypts data within a protocol/key context"""

    async def encrypt(self, plaintext: bytes, protocol_id: str, key_id: str) -> bytes:
        """
        Encrypt data so that only the same user, in the same context, can read it back.

        Raises:
            CryptoError: If encryption fails
            IdentityUnavailableError: If no wallet identity exists
        """
        ...

    async def decrypt(self, ciphertext: bytes, protocol_id: str, key_id: str) -> str:
        """
        Decrypt data previously produced by encrypt with the same protocol_id and key_id.

        Raises:
            CryptoError: If the ciphertext cannot be decrypted in this context
            IdentityUnavailableError: If no wallet identity exists
        """
        ...
