from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import asyncio
import hashlib
import json
import secrets
import sqlite3
import traceback
from loguru import logger
import tasktokens.configuration.constants as global_constants
from tasktokens.models.models import ActionOutput, ActionInput, ActionResult, BasketOutput
from tasktokens.utilities.action_log import stamp_log
from tasktokens.utilities.exceptions import LedgerError, IdentityUnavailableError
from tasktokens.utilities.script_codec import PushDropCodec

TX_VERSION = 1

class LocalLedger:
    """
    SQLite-backed ledger of value-bearing outputs.
    Every action is applied atomically and every query is scoped to the caller's identity key.
    """

    def __init__(self, db_path: str | Path, identity_key: Optional[str]):
        self.db_path = Path(db_path)
        self.identity_key = identity_key.upper() if identity_key else None
        self._initialize_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, isolation_level=None, timeout=30)

    def _initialize_database(self):
        """Initialize SQLite database with ledger tables if they don't exist"""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS transactions (
                    txid TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    description TEXT NOT NULL,
                    raw_tx TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS outputs (
                    txid TEXT NOT NULL REFERENCES transactions(txid),
                    output_index INTEGER NOT NULL,
                    owner TEXT NOT NULL,
                    satoshis INTEGER NOT NULL,
                    script TEXT NOT NULL,
                    basket TEXT,
                    description TEXT NOT NULL DEFAULT '',
                    spent_by TEXT,
                    PRIMARY KEY (txid, output_index)
                );
                CREATE INDEX IF NOT EXISTS outputs_owner_basket ON outputs (owner, basket);
            """)

    def _require_identity(self, operation: str) -> str:
        if self.identity_key is None:
            raise IdentityUnavailableError(operation)
        return self.identity_key

    @staticmethod
    def _validate_outputs(outputs: list[ActionOutput]):
        for index, output in enumerate(outputs):
            satoshis = output.satoshis
            if isinstance(satoshis, bool) or not isinstance(satoshis, int) \
                    or not 0 < satoshis <= global_constants.MAX_TASK_AMOUNT:
                raise LedgerError(f"Output {index} has invalid amount: {output.satoshis}", "create_action")
            try:
                bytes.fromhex(output.script)
            except (TypeError, ValueError) as e:
                raise LedgerError(f"Output {index} script is not valid hex", "create_action") from e

    async def create_action(
            self,
            description: str,
            outputs: Optional[list[ActionOutput]] = None,
            inputs: Optional[list[ActionInput]] = None,
            log: str = ''
        ) -> ActionResult:
        """
        Commit a transaction that redeems the inputs and creates the outputs.

        Args:
            description: Human-readable description of the action
            outputs: New outputs to create
            inputs: Existing outputs to redeem, each with an unlocking proof
            log: Optional log that the ledger appends its own entries to

        Returns:
            ActionResult with the new txid, the stamped log and the provenance envelope

        Raises:
            LedgerError: If any input is unknown, spent, not owned or not unlocked, or any output is invalid
            IdentityUnavailableError: If the ledger has no identity
        """
        owner = self._require_identity("create_action")
        outputs = outputs or []
        inputs = inputs or []

        if not outputs and not inputs:
            raise LedgerError("An action needs at least one input or output", "create_action")
        self._validate_outputs(outputs)

        tx = {
            'version': TX_VERSION,
            'owner': owner,
            'description': description,
            'inputs': [
                {'txid': i.txid, 'output_index': i.output_index, 'unlocking_script': i.unlocking_script}
                for i in inputs
            ],
            'outputs': [{'satoshis': o.satoshis, 'script': o.script} for o in outputs],
            'nonce': secrets.token_hex(8),
        }
        raw_tx = json.dumps(tx, sort_keys=True, separators=(',', ':')).encode()
        txid = hashlib.sha256(raw_tx).hexdigest()

        log = stamp_log(log, global_constants.LEDGER_SERVICE_NAME, f"received action {txid}")
        await asyncio.to_thread(self._commit, txid, raw_tx.hex(), owner, description, outputs, inputs)
        log = stamp_log(log, global_constants.LEDGER_SERVICE_NAME, f"committed action {txid}")

        logger.debug(f"LocalLedger.create_action: Committed {txid} ({len(inputs)} inputs, {len(outputs)} outputs)")
        return ActionResult(txid=txid, log=log, envelope={'raw_tx': raw_tx.hex(), 'txid': txid})

    def _commit(
            self,
            txid: str,
            raw_tx: str,
            owner: str,
            description: str,
            outputs: list[ActionOutput],
            inputs: list[ActionInput]
        ):
        with closing(self._connect()) as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                for action_input in inputs:
                    self._spend_input(conn, action_input, owner, txid)

                conn.execute("""
                    INSERT INTO transactions (txid, owner, description, raw_tx, created_at)
                    VALUES (?, ?, ?, ?, ?);
                """, (txid, owner, description, raw_tx, datetime.now(timezone.utc).isoformat()))
                conn.executemany("""
                    INSERT INTO outputs (txid, output_index, owner, satoshis, script, basket, description)
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                """, [
                    (txid, index, owner, o.satoshis, o.script, o.basket, o.description)
                    for index, o in enumerate(outputs)
                ])
                conn.execute("COMMIT")
            except LedgerError:
                conn.execute("ROLLBACK")
                raise
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                logger.error(f"LocalLedger._commit: Database error committing {txid}: {e}")
                logger.error(traceback.format_exc())
                raise LedgerError(f"Failed to commit action: {e}", "create_action") from e

    @staticmethod
    def _spend_input(conn: sqlite3.Connection, action_input: ActionInput, owner: str, txid: str):
        outpoint = f"{action_input.txid}.{action_input.output_index}"
        row = conn.execute("""
            SELECT owner, satoshis, script, spent_by FROM outputs
            WHERE txid = ? AND output_index = ?;
        """, (action_input.txid, action_input.output_index)).fetchone()

        if row is None:
            raise LedgerError(f"Input {outpoint} does not exist", "create_action")

        output_owner, satoshis, script, spent_by = row
        if spent_by is not None:
            raise LedgerError(f"Input {outpoint} was already spent by {spent_by} (double spend)", "create_action")
        if output_owner != owner:
            raise LedgerError(f"Input {outpoint} is not owned by this identity", "create_action")
        if not PushDropCodec.verify_unlock(
            action_input.txid, action_input.output_index, script, satoshis, action_input.unlocking_script
        ):
            raise LedgerError(f"Unlocking script for {outpoint} is invalid", "create_action")

        conn.execute("""
            UPDATE outputs SET spent_by = ?
            WHERE txid = ? AND output_index = ?;
        """, (txid, action_input.txid, action_input.output_index))

    async def get_transaction_outputs(
            self,
            basket: str,
            spendable: bool = True,
            include_envelope: bool = True
        ) -> list[BasketOutput]:
        """
        Get this identity's outputs in a basket, oldest first.

        Args:
            basket: Basket the outputs were placed in
            spendable: Only return outputs that have not been spent
            include_envelope: Attach the provenance envelope of the creating transaction

        Raises:
            IdentityUnavailableError: If the ledger has no identity
        """
        owner = self._require_identity("get_transaction_outputs")
        rows = await asyncio.to_thread(self._query_outputs, owner, basket, spendable)
        return [
            BasketOutput(
                output_script=script,
                amount=satoshis,
                txid=txid,
                vout=output_index,
                envelope={'raw_tx': raw_tx, 'txid': txid} if include_envelope else None
            )
            for txid, output_index, satoshis, script, raw_tx in rows
        ]

    def _query_outputs(self, owner: str, basket: str, spendable: bool) -> list[tuple]:
        query = """
            SELECT o.txid, o.output_index, o.satoshis, o.script, t.raw_tx
            FROM outputs o JOIN transactions t ON o.txid = t.txid
            WHERE o.owner = ? AND o.basket = ?
        """
        if spendable:
            query += " AND o.spent_by IS NULL"
        query += " ORDER BY o.rowid;"

        with closing(self._connect()) as conn:
            try:
                return conn.execute(query, (owner, basket)).fetchall()
            except sqlite3.Error as e:
                logger.error(f"LocalLedger._query_outputs: Database error: {e}")
                raise LedgerError(f"Failed to query basket '{basket}': {e}", "get_transaction_outputs") from e

    async def check_for_agent(self) -> bool:
        """Check whether the ledger is reachable with an identity"""
        if self.identity_key is None:
            return False
        try:
            await asyncio.to_thread(self._ping)
            return True
        except sqlite3.Error as e:
            logger.warning(f"LocalLedger.check_for_agent: Ledger unreachable: {e}")
            return False

    def _ping(self):
        with closing(self._connect()) as conn:
            conn.execute("SELECT 1;").fetchone()
