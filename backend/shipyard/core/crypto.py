"""
Encryption of environment variables at rest using Fernet.
"""
import json
from typing import List, Dict

from cryptography.fernet import Fernet, InvalidToken

from shipyard.core.config import settings
from shipyard.core.exceptions import InvalidConfigurationError


class EnvCipher:
    """Encrypt and decrypt the env var list stored on a deployment config."""

    def __init__(self, key: str):
        if not key:
            raise InvalidConfigurationError("FIELD_ENCRYPTION_KEY", "key is not set")
        self.fernet = Fernet(key.encode())

    def encrypt(self, env: List[Dict[str, str]]) -> str:
        """Encrypt a list of {name, value} pairs."""
        if not env:
            return ""
        return self.fernet.encrypt(json.dumps(env).encode()).decode()

    def decrypt(self, ciphertext: str) -> List[Dict[str, str]]:
        """Decrypt a stored env list. Empty ciphertext means no variables."""
        if not ciphertext:
            return []
        try:
            return json.loads(self.fernet.decrypt(ciphertext.encode()).decode())
        except InvalidToken:
            raise InvalidConfigurationError("env", "stored environment could not be decrypted")


def get_env_cipher() -> EnvCipher:
    return EnvCipher(settings.FIELD_ENCRYPTION_KEY)
