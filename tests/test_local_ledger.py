import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from tasktokens.ledger.local_ledger import LocalLedger
from tasktokens.models.models import ActionInput, ActionOutput
from tasktokens.utilities.action_log import format_stamped_log
from tasktokens.utilities.exceptions import IdentityUnavailableError, LedgerError
from tasktokens.utilities.keys import KeyDeriver
from tasktokens.utilities.script_codec import PushDropCodec
from tests.helpers import make_seed

PROTOCOL_ID = "todo list"
KEY_ID = "1"
BASKET = "todo tokens"


class TestLocalLedger(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmp_dir = TemporaryDirectory()
        self.db_path = Path(self.tmp_dir.name) / "ledger.sqlite"
        self.key_deriver = KeyDeriver(make_seed())
        self.codec = PushDropCodec(self.key_deriver)
        self.ledger = LocalLedger(self.db_path, self.key_deriver.identity_key)

    def tearDown(self) -> None:
        self.tmp_dir.cleanup()

    async def lock(self, amount: int = 1000, basket: str = BASKET):
        script = await self.codec.create([b"field"], PROTOCOL_ID, KEY_ID)
        result = await self.ledger.create_action(
            description="lock",
            outputs=[ActionOutput(satoshis=amount, script=script, basket=basket)]
        )
        return result, script

    async def unlock_input(self, txid: str, script: str, amount: int = 1000) -> ActionInput:
        proof = await self.codec.redeem(PROTOCOL_ID, KEY_ID, txid, 0, script, amount)
        return ActionInput(txid=txid, output_index=0, unlocking_script=proof)

    async def test_outputs_are_returned_oldest_first(self) -> None:
        first, _ = await self.lock(1000)
        second, _ = await self.lock(2000)
        await self.lock(3000, basket="elsewhere")

        outputs = await self.ledger.get_transaction_outputs(BASKET)

        self.assertEqual([first.txid, second.txid], [o.txid for o in outputs])
        self.assertEqual([1000, 2000], [o.amount for o in outputs])
        self.assertEqual([0, 0], [o.vout for o in outputs])
        self.assertEqual(first.envelope, outputs[0].envelope)

    async def test_envelope_can_be_omitted(self) -> None:
        await self.lock()
        outputs = await self.ledger.get_transaction_outputs(BASKET, include_envelope=False)
        self.assertIsNone(outputs[0].envelope)

    async def test_redeeming_spends_output(self) -> None:
        locked, script = await self.lock()

        await self.ledger.create_action(description="unlock", inputs=[await self.unlock_input(locked.txid, script)])

        self.assertEqual([], await self.ledger.get_transaction_outputs(BASKET))
        spent = await self.ledger.get_transaction_outputs(BASKET, spendable=False)
        self.assertEqual([locked.txid], [o.txid for o in spent])

    async def test_double_spend_is_rejected(self) -> None:
        locked, script = await self.lock()
        action_input = await self.unlock_input(locked.txid, script)
        await self.ledger.create_action(description="unlock", inputs=[action_input])

        with self.assertRaises(LedgerError) as ctx:
            await self.ledger.create_action(description="unlock again", inputs=[action_input])
        self.assertIn("double spend", str(ctx.exception))

    async def test_invalid_proof_is_rejected(self) -> None:
        locked, script = await self.lock()
        bad_input = await self.unlock_input(locked.txid, script, amount=1)

        with self.assertRaises(LedgerError):
            await self.ledger.create_action(description="unlock", inputs=[bad_input])
        self.assertEqual(1, len(await self.ledger.get_transaction_outputs(BASKET)))

    async def test_unknown_input_is_rejected(self) -> None:
        with self.assertRaises(LedgerError):
            await self.ledger.create_action(
                description="unlock",
                inputs=[ActionInput(txid="cd" * 32, output_index=0, unlocking_script="00")]
            )

    async def test_failed_action_is_atomic(self) -> None:
        first, first_script = await self.lock()
        good_input = await self.unlock_input(first.txid, first_script)
        bad_input = ActionInput(txid="cd" * 32, output_index=0, unlocking_script="00")

        with self.assertRaises(LedgerError):
            await self.ledger.create_action(description="partial", inputs=[good_input, bad_input])

        self.assertEqual([first.txid], [o.txid for o in await self.ledger.get_transaction_outputs(BASKET)])

    async def test_invalid_actions(self) -> None:
        for kwargs in [
            {},
            {"outputs": [ActionOutput(satoshis=0, script="00")]},
            {"outputs": [ActionOutput(satoshis=-5, script="00")]},
            {"outputs": [ActionOutput(satoshis=True, script="00")]},
            {"outputs": [ActionOutput(satoshis=2**63, script="00")]},
            {"outputs": [ActionOutput(satoshis=10, script="xyz")]},
        ]:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(LedgerError):
                    await self.ledger.create_action(description="invalid", **kwargs)

    async def test_other_identity_cannot_see_or_spend(self) -> None:
        locked, script = await self.lock()
        intruder_keys = KeyDeriver(make_seed())
        intruder = LocalLedger(self.db_path, intruder_keys.identity_key)

        self.assertEqual([], await intruder.get_transaction_outputs(BASKET))
        proof = await PushDropCodec(intruder_keys).redeem(PROTOCOL_ID, KEY_ID, locked.txid, 0, script, 1000)
        with self.assertRaises(LedgerError):
            await intruder.create_action(
                description="steal",
                inputs=[ActionInput(txid=locked.txid, output_index=0, unlocking_script=proof)]
            )

    async def test_missing_identity(self) -> None:
        ledger = LocalLedger(self.db_path, None)
        with self.assertRaises(IdentityUnavailableError):
            await ledger.get_transaction_outputs(BASKET)
        with self.assertRaises(IdentityUnavailableError):
            await ledger.create_action(description="x", outputs=[ActionOutput(satoshis=1, script="00")])
        self.assertFalse(await ledger.check_for_agent())

    async def test_agent_check(self) -> None:
        self.assertTrue(await self.ledger.check_for_agent())

    async def test_action_log_is_stamped(self) -> None:
        result, _ = await self.lock()
        lines = format_stamped_log(result.log).splitlines()
        self.assertEqual(2, len(lines))
        self.assertTrue(lines[0].startswith("(+0ms) tasktokens-ledger: received action"))
        self.assertIn(result.txid, lines[1])


if __name__ == '__main__':
    unittest.main()
