from contextlib import closing
from pathlib import Path
from typing import Optional
import sqlite3
import base64
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.fernet import Fernet, InvalidToken
from loguru import logger
from tasktokens.configuration.configuration import get_config_directory

CREDENTIALS_DB_FILENAME = "credentials.sqlite"
WALLET_SEED_KEY = "tasktokens__v1walletseed"

def get_database_path(config_dir: Optional[Path] = None) -> Path:
    return get_config_directory(config_dir) / CREDENTIALS_DB_FILENAME

class InvalidPasswordError(ValueError):
    """Exception raised when a password does not decrypt the stored credentials"""
    pass

class WalletSeedExistsError(ValueError):
    """Exception raised when storing a wallet seed would replace the existing one"""
    pass

class CredentialManager:
    """Stores the wallet seed encrypted under a password-derived key"""

    def __init__(self, password: str, db_path: Optional[Path] = None):
        if not password:
            raise ValueError("Password is required")
        self.db_path = db_path or get_database_path()
        self.encryption_key = self._derive_encryption_key(password)
        self._initialize_database()
        if not self.verify_password():
            raise InvalidPasswordError("Invalid password")

    def _initialize_database(self):
        """Initialize SQLite database with credentials table if it doesn't exist"""
        with closing(sqlite3.connect(self.db_path)) as conn, conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS credentials (
                    key TEXT PRIMARY KEY,
                    encrypted_value TEXT NOT NULL
                );
            """)

    def _encrypt_value(self, value: str) -> str:
        """Encrypt a value using the derived encryption key"""
        fernet = Fernet(self.encryption_key)
        return fernet.encrypt(value.encode()).decode()

    def _decrypt_value(self, encrypted_value: str) -> str:
        """Decrypt a value using the derived encryption key"""
        fernet = Fernet(self.encryption_key)
        return fernet.decrypt(encrypted_value.encode()).decode()

    def verify_password(self) -> bool:
        """Verify the password by decrypting a stored credential. Any password opens an empty store."""
        with closing(sqlite3.connect(self.db_path)) as conn:
            row = conn.execute("SELECT encrypted_value FROM credentials LIMIT 1;").fetchone()
        if row is None:
            return True
        try:
            self._decrypt_value(row[0])
            return True
        except InvalidToken:
            return False

    def get_credential(self, credential_key: str) -> Optional[str]:
        """Get a specific credential"""
        with closing(sqlite3.connect(self.db_path)) as conn:
            row = conn.execute("""
                SELECT encrypted_value FROM credentials
                WHERE key = ?;
            """, (credential_key,)).fetchone()
        if row:
            return self._decrypt_value(row[0])
        return None

    def enter_and_encrypt_credential(self, credentials_dict: dict[str, str]):
        """Encrypt and store multiple credentials in SQLite database"""
        with closing(sqlite3.connect(self.db_path)) as conn, conn:
            for key, value in credentials_dict.items():
                conn.execute("""
                    INSERT OR REPLACE INTO credentials (key, encrypted_value)
                    VALUES (?, ?);
                """, (key, self._encrypt_value(value)))
        logger.debug(f"CredentialManager: Stored {len(credentials_dict)} credentials in {self.db_path}")

    def get_wallet_seed(self) -> Optional[str]:
        return self.get_credential(WALLET_SEED_KEY)

    def has_wallet_seed(self) -> bool:
        return self.get_wallet_seed() is not None

    def set_wallet_seed(self, wallet_seed: str, overwrite: bool = False):
        """Store the wallet seed. An existing seed is only replaced when overwrite is set."""
        if self.has_wallet_seed():
            if not overwrite:
                raise WalletSeedExistsError("A wallet seed is already stored")
            logger.warning("CredentialManager.set_wallet_seed: Replacing the stored wallet seed")
        self.enter_and_encrypt_credential({WALLET_SEED_KEY: wallet_seed})

    @staticmethod
    def _derive_encryption_key(password: str) -> bytes:
        """Derive an encryption key from a password"""
        kdf = PBKDF2HMAC(
            algorithm=SHA256(),
            length=32,
            salt=b'tasktokens_salt',
            iterations=100000,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))
