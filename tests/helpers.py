from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

from xrpl.core.keypairs import generate_seed

from tasktokens.configuration.configuration import AppConfig
from tasktokens.container.service_container import ServiceContainer
from tasktokens.models.models import ActionResult, Task, Token
from tasktokens.task_processing.task_engine import TaskTokenEngine

FAKE_TXID = "ab" * 32

def make_container(tmp_dir: str | Path, wallet_seed: Optional[str] = None, ledger_name: str = "ledger.sqlite") -> ServiceContainer:
    """Wire real services against a throwaway ledger"""
    app_config = AppConfig(ledger_path=Path(tmp_dir) / ledger_name, agent_poll_interval=0.01)
    return ServiceContainer.from_seed(wallet_seed, app_config)

def make_seed() -> str:
    return generate_seed()

def make_mock_engine() -> TaskTokenEngine:
    """Engine whose collaborators are all mocks, for asserting what gets contacted"""
    script_codec = MagicMock()
    script_codec.create = AsyncMock(return_value="00")
    script_codec.redeem = AsyncMock(return_value="00")
    return TaskTokenEngine(
        encryption=AsyncMock(),
        script_codec=script_codec,
        action_submitter=AsyncMock(**{"create_action.return_value": ActionResult(txid=FAKE_TXID)}),
        basket_reader=AsyncMock(**{"get_transaction_outputs.return_value": []}),
    )

def make_task(description: str = "Buy milk", amount: int = 1000, txid: str = FAKE_TXID, output_index: Optional[int] = 0) -> Task:
    return Task(
        description=description,
        amount=amount,
        token=Token(locking_script="00", txid=txid, output_index=output_index)
    )

def assert_no_collaborator_called(test_case, engine: TaskTokenEngine):
    test_case.assertEqual([], engine.encryption.mock_calls)
    test_case.assertEqual([], engine.action_submitter.mock_calls)
    test_case.assertEqual([], engine.basket_reader.mock_calls)
    engine.script_codec.create.assert_not_awaited()
    engine.script_codec.redeem.assert_not_awaited()
