import unittest

import tasktokens.configuration.constants as global_constants
from tasktokens.utilities.encryption import MessageEncryption
from tasktokens.utilities.exceptions import CryptoError, IdentityUnavailableError
from tasktokens.utilities.keys import KeyDeriver
from tests.helpers import make_seed

PROTOCOL_ID = global_constants.PROTOCOL_ID
KEY_ID = global_constants.KEY_ID


class TestMessageEncryption(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.seed = make_seed()
        self.encryption = MessageEncryption(KeyDeriver(self.seed))

    async def test_round_trip(self) -> None:
        ciphertext = await self.encryption.encrypt("Buy milk 🥛".encode(), PROTOCOL_ID, KEY_ID)

        self.assertIsInstance(ciphertext, bytes)
        self.assertNotIn(b"Buy milk", ciphertext)
        self.assertEqual("Buy milk 🥛", await self.encryption.decrypt(ciphertext, PROTOCOL_ID, KEY_ID))

    async def test_same_seed_derives_same_key(self) -> None:
        ciphertext = await self.encryption.encrypt(b"portable", PROTOCOL_ID, KEY_ID)
        other_session = MessageEncryption(KeyDeriver(self.seed))
        self.assertEqual("portable", await other_session.decrypt(ciphertext, PROTOCOL_ID, KEY_ID))

    async def test_other_context_cannot_decrypt(self) -> None:
        ciphertext = await self.encryption.encrypt(b"secret", PROTOCOL_ID, KEY_ID)

        for decryptor, protocol_id, key_id in [
            (self.encryption, PROTOCOL_ID, "2"),
            (self.encryption, "another protocol", KEY_ID),
            (MessageEncryption(KeyDeriver(make_seed())), PROTOCOL_ID, KEY_ID),
        ]:
            with self.subTest(protocol_id=protocol_id, key_id=key_id):
                with self.assertRaises(CryptoError):
                    await decryptor.decrypt(ciphertext, protocol_id, key_id)

    async def test_corrupt_ciphertext(self) -> None:
        with self.assertRaises(CryptoError):
            await self.encryption.decrypt(b"garbage", PROTOCOL_ID, KEY_ID)

    async def test_rejects_non_bytes_plaintext(self) -> None:
        with self.assertRaises(CryptoError):
            await self.encryption.encrypt(1234, PROTOCOL_ID, KEY_ID)

    async def test_missing_identity(self) -> None:
        encryption = MessageEncryption(KeyDeriver(None))
        with self.assertRaises(IdentityUnavailableError) as ctx:
            await encryption.encrypt(b"x", PROTOCOL_ID, KEY_ID)
        self.assertEqual("ERR_NO_METANET_IDENTITY", ctx.exception.code)


class TestKeyDeriver(unittest.TestCase):
    def test_child_keys_differ_by_context(self) -> None:
        deriver = KeyDeriver(make_seed())
        first = deriver.derive_child_keypair(PROTOCOL_ID, "1")
        second = deriver.derive_child_keypair(PROTOCOL_ID, "2")
        self.assertNotEqual(first, second)
        self.assertEqual(first, deriver.derive_child_keypair(PROTOCOL_ID, "1"))
        self.assertNotEqual(deriver.identity_key, first[0])

    def test_signatures_verify_against_child_key(self) -> None:
        deriver = KeyDeriver(make_seed())
        public_key, _ = deriver.derive_child_keypair(PROTOCOL_ID, KEY_ID)
        signature = deriver.sign(b"message", PROTOCOL_ID, KEY_ID)

        self.assertTrue(KeyDeriver.verify(b"message", signature, public_key))
        self.assertFalse(KeyDeriver.verify(b"other message", signature, public_key))

    def test_invalid_seed(self) -> None:
        with self.assertRaises(CryptoError):
            KeyDeriver("not a seed").derive_child_keypair(PROTOCOL_ID, KEY_ID)

    def test_no_seed_has_no_identity(self) -> None:
        deriver = KeyDeriver(None)
        self.assertFalse(deriver.has_identity)
        with self.assertRaises(IdentityUnavailableError):
            deriver.identity_key


if __name__ == '__main__':
    unittest.main()
