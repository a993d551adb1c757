from typing import Protocol
from tasktokens.models.models import DecodedScript

class TokenScriptCodec(Protocol):
    """Protocol for encoding data fields into spendable token scripts"""

    async def create(self, fields: list[bytes], protocol_id: str, key_id: str) -> str:
        """Build a hex locking script carrying the fields, locked to the protocol/key context"""
        ...

    def decode(self, locking_script: str) -> DecodedScript:
        """
        Recover the fields from a hex locking script.

        Raises:
            ScriptError: If the script is malformed
        """
        ...

    async def redeem(
            self,
            protocol_id: str,
            key_id: str,
            txid: str,
            output_index: int,
            locking_script: str,
            amount: int
        ) -> str:
        """Produce a hex unlocking proof for a previously created token"""
        ...
