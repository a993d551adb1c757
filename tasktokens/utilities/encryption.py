from typing import Union
from cryptography.fernet import Fernet, InvalidToken
from loguru import logger
from tasktokens.utilities.keys import KeyDeriver
from tasktokens.utilities.exceptions import CryptoError

class MessageEncryption:
    """Encrypts task descriptions with keys that only the owning wallet can derive"""

    def __init__(self, key_deriver: KeyDeriver):
        self.key_deriver = key_deriver

    def _get_fernet(self, protocol_id: str, key_id: str) -> Fernet:
        return Fernet(self.key_deriver.get_symmetric_key(protocol_id, key_id))

    async def encrypt(self, plaintext: Union[str, bytes], protocol_id: str, key_id: str) -> bytes:
        """
        Encrypt data under a protocol/key context.

        Args:
            plaintext: Content to encrypt (string or bytes)
            protocol_id: Context in which the data is encrypted
            key_id: Key index within the protocol

        Returns:
            bytes: The Fernet token

        Raises:
            CryptoError: If plaintext is neither string nor bytes, or encryption fails
            IdentityUnavailableError: If no wallet identity exists
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode()
        elif not isinstance(plaintext, bytes):
            raise CryptoError(f"Plaintext must be string or bytes, not {type(plaintext)}", "encrypt")

        fernet = self._get_fernet(protocol_id, key_id)
        try:
            return fernet.encrypt(plaintext)
        except Exception as e:
            logger.error(f"MessageEncryption.encrypt: Encryption failed: {e}")
            raise CryptoError(f"Encryption failed: {e}", "encrypt") from e

    async def decrypt(self, ciphertext: Union[str, bytes], protocol_id: str, key_id: str) -> str:
        """
        Decrypt data produced by encrypt under the same protocol/key context.

        Raises:
            CryptoError: If the ciphertext is corrupt or was encrypted in another context
            IdentityUnavailableError: If no wallet identity exists
        """
        if isinstance(ciphertext, str):
            ciphertext = ciphertext.encode()

        fernet = self._get_fernet(protocol_id, key_id)
        try:
            return fernet.decrypt(ciphertext).decode()
        except (InvalidToken, UnicodeDecodeError) as e:
            raise CryptoError("Unable to decrypt ciphertext in this context", "decrypt") from e
