"""
Push-drop token scripts.

A locking script carries arbitrary data fields next to an ordinary signature check:

    <pubkey> OP_CHECKSIG <field_1> ... <field_n> <signature> OP_2DROP ... [OP_DROP]

The data pushes are dropped again before the script finishes, so only the owner of
<pubkey> can redeem the token. <signature> signs the encoded fields with the same key.
"""
import hashlib
from typing import Optional
from loguru import logger
from tasktokens.models.models import DecodedScript
from tasktokens.utilities.keys import KeyDeriver
from tasktokens.utilities.exceptions import ScriptError

OP_0 = 0x00
OP_PUSHDATA1 = 0x4c
OP_PUSHDATA2 = 0x4d
OP_PUSHDATA4 = 0x4e
OP_2DROP = 0x6d
OP_DROP = 0x75
OP_CHECKSIG = 0xac

MAX_DIRECT_PUSH = 75
PUSHDATA_SIZE_BYTES = {OP_PUSHDATA1: 1, OP_PUSHDATA2: 2, OP_PUSHDATA4: 4}

def encode_push(data: bytes) -> bytes:
    """Encode data as a minimal push operation"""
    length = len(data)
    if length == 0:
        return bytes([OP_0])
    if length <= MAX_DIRECT_PUSH:
        return bytes([length]) + data
    if length <= 0xff:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xffff:
        return bytes([OP_PUSHDATA2]) + length.to_bytes(2, 'little') + data
    return bytes([OP_PUSHDATA4]) + length.to_bytes(4, 'little') + data

def read_chunks(script: bytes) -> list[tuple[int, Optional[bytes]]]:
    """
    Split a script into (opcode, data) chunks.
    data is None for opcodes that push nothing.

    Raises:
        ScriptError: If a push runs past the end of the script
    """
    chunks = []
    position = 0
    while position < len(script):
        opcode = script[position]
        position += 1

        if opcode == OP_0:
            chunks.append((opcode, b''))
            continue
        elif opcode <= MAX_DIRECT_PUSH:
            size_bytes = 0
            size = opcode
        elif opcode in PUSHDATA_SIZE_BYTES:
            size_bytes = PUSHDATA_SIZE_BYTES[opcode]
        else:
            chunks.append((opcode, None))
            continue

        if size_bytes:
            if position + size_bytes > len(script):
                raise ScriptError("Truncated push length", "decode")
            size = int.from_bytes(script[position:position + size_bytes], 'little')
            position += size_bytes

        if position + size > len(script):
            raise ScriptError(f"Push of {size} bytes exceeds script length", "decode")
        chunks.append((opcode, script[position:position + size]))
        position += size

    return chunks

def _drop_opcodes(push_count: int) -> list[int]:
    return [OP_2DROP] * (push_count // 2) + [OP_DROP] * (push_count % 2)

def _encode_fields(fields: list[bytes]) -> bytes:
    return b''.join(encode_push(field) for field in fields)

def redemption_preimage(txid: str, output_index: int, locking_script: str, amount: int) -> bytes:
    """Digest that an unlocking proof signs"""
    try:
        return hashlib.sha256(
            bytes.fromhex(txid)
            + int(output_index).to_bytes(4, 'little')
            + bytes.fromhex(locking_script)
            + int(amount).to_bytes(8, 'little')
        ).digest()
    except (ValueError, OverflowError) as e:
        raise ScriptError(f"Invalid redemption parameters: {e}", "redeem") from e

class PushDropCodec:
    """Encodes data fields into push-drop locking scripts and redeems them"""

    def __init__(self, key_deriver: KeyDeriver):
        self.key_deriver = key_deriver

    async def create(self, fields: list[bytes], protocol_id: str, key_id: str) -> str:
        """
        Build a locking script carrying the fields.

        Args:
            fields: Data payload, in order
            protocol_id: Context of the key that locks the token
            key_id: Key index within the protocol

        Returns:
            str: The locking script in hex
        """
        public_key, _ = self.key_deriver.derive_child_keypair(protocol_id, key_id)
        signature = self.key_deriver.sign(_encode_fields(fields), protocol_id, key_id)

        script = bytearray(encode_push(bytes.fromhex(public_key)))
        script.append(OP_CHECKSIG)
        script += _encode_fields(fields)
        script += encode_push(signature)
        script += bytes(_drop_opcodes(len(fields) + 1))
        return bytes(script).hex()

    @staticmethod
    def decode(locking_script: str) -> DecodedScript:
        """
        Recover the fields of a locking script.

        Raises:
            ScriptError: If the script is not a push-drop script
        """
        try:
            script = bytes.fromhex(locking_script)
        except (TypeError, ValueError) as e:
            raise ScriptError("Locking script is not valid hex", "decode") from e

        chunks = read_chunks(script)
        if len(chunks) < 3 or chunks[0][1] is None or chunks[1] != (OP_CHECKSIG, None):
            raise ScriptError("Not a push-drop locking script", "decode")

        pushes = []
        for _, data in chunks[2:]:
            if data is None:
                break
            pushes.append(data)

        if not pushes:
            raise ScriptError("Locking script has no field signature", "decode")

        trailing = [opcode for opcode, _ in chunks[2 + len(pushes):]]
        if trailing != _drop_opcodes(len(pushes)):
            raise ScriptError("Locking script does not drop its fields", "decode")

        return DecodedScript(
            locking_public_key=chunks[0][1].hex().upper(),
            fields=pushes[:-1],
            signature=pushes[-1]
        )

    @staticmethod
    def verify_fields(decoded: DecodedScript) -> bool:
        """Check that the fields were signed by the locking key"""
        return KeyDeriver.verify(_encode_fields(decoded.fields), decoded.signature, decoded.locking_public_key)

    async def redeem(
            self,
            protocol_id: str,
            key_id: str,
            txid: str,
            output_index: int,
            locking_script: str,
            amount: int
        ) -> str:
        """
        Produce the unlocking proof for a token.

        Returns:
            str: The unlocking script in hex
        """
        preimage = redemption_preimage(txid, output_index, locking_script, amount)
        signature = self.key_deriver.sign(preimage, protocol_id, key_id)
        logger.debug(f"PushDropCodec.redeem: Prepared unlocking proof for {txid}.{output_index}")
        return encode_push(signature).hex()

    @staticmethod
    def verify_unlock(
            txid: str,
            output_index: int,
            locking_script: str,
            amount: int,
            unlocking_script: str
        ) -> bool:
        """Check an unlocking proof against the key in the locking script"""
        try:
            decoded = PushDropCodec.decode(locking_script)
            chunks = read_chunks(bytes.fromhex(unlocking_script))
            preimage = redemption_preimage(txid, output_index, locking_script, amount)
        except (ScriptError, TypeError, ValueError) as e:
            logger.debug(f"PushDropCodec.verify_unlock: Malformed proof for {txid}.{output_index}: {e}")
            return False

        if len(chunks) != 1 or chunks[0][1] is None:
            return False
        return KeyDeriver.verify(preimage, chunks[0][1], decoded.locking_public_key)
