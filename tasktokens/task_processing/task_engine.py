import asyncio
import math
import traceback
from typing import Any, Callable, Optional
from loguru import logger
import tasktokens.configuration.constants as global_constants
from tasktokens.configuration.configuration import RuntimeConfig
from tasktokens.models.models import Task, Token, TaskDecodeResult, ActionOutput, ActionInput, ActionResult, BasketOutput
from tasktokens.protocols.encryption import EncryptionProvider
from tasktokens.protocols.script_codec import TokenScriptCodec
from tasktokens.protocols.ledger import LedgerActionSubmitter, TokenBasketReader
from tasktokens.task_processing.task_collection import TaskCollection, TaskListener
from tasktokens.utilities.action_log import format_stamped_log
from tasktokens.utilities.exceptions import (
    TaskTokenError,
    MissingDescriptionError,
    InvalidAmountError,
    IncompleteTaskDataError,
    RedemptionInProgressError,
    IdentityUnavailableError,
    ScriptError,
)

class TaskTokenEngine:
    """
    Drives task tokens through creation, listing and redemption.

    Creating a task locks an amount behind a token whose fields are the ToDo namespace marker and
    the encrypted description. Completing it redeems the token, returning the amount to the user.
    The engine owns the task collection; callers read it through `tasks` or subscribe to changes.

    Operations are not mutually exclusive. A listing that finishes after an optimistic create, but
    before the ledger reflects it, replaces the collection without that task until the next listing.
    """

    def __init__(
            self,
            encryption: EncryptionProvider,
            script_codec: TokenScriptCodec,
            action_submitter: LedgerActionSubmitter,
            basket_reader: TokenBasketReader,
            protocol_id: str = global_constants.PROTOCOL_ID,
            key_id: str = global_constants.KEY_ID,
        ):
        self.encryption = encryption
        self.script_codec = script_codec
        self.action_submitter = action_submitter
        self.basket_reader = basket_reader
        self.protocol_id = protocol_id
        self.key_id = key_id

        self.collection = TaskCollection()
        self.tasks_loading = False
        self.create_loading = False
        self.complete_loading = False
        self._redemptions_in_flight: set[tuple[str, int]] = set()
        self._completions_running = 0

    @property
    def tasks(self) -> list[Task]:
        """Current tasks, newest first"""
        return self.collection.snapshot()

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        return self.collection.subscribe(listener)

    # CREATE

    @staticmethod
    def validate_amount(amount: Any) -> int:
        """
        Coerce an amount to an integer number of the ledger's smallest unit.

        Raises:
            InvalidAmountError: If the amount is missing, not a number, zero or outside the allowed range
        """
        if isinstance(amount, bool) or amount is None:
            raise InvalidAmountError("Enter an amount for the new task!", "create_task")

        if isinstance(amount, str):
            try:
                amount = int(amount.strip())
            except ValueError:
                raise InvalidAmountError("Enter an amount for the new task!", "create_task")
        elif isinstance(amount, float):
            if math.isnan(amount) or math.isinf(amount) or not amount.is_integer():
                raise InvalidAmountError("Enter an amount for the new task!", "create_task")
            amount = int(amount)
        elif not isinstance(amount, int):
            raise InvalidAmountError("Enter an amount for the new task!", "create_task")

        if amount == 0:
            raise InvalidAmountError("Enter an amount for the new task!", "create_task")
        if amount < global_constants.MIN_TASK_AMOUNT:
            raise InvalidAmountError(
                f"The amount must be more than {global_constants.MIN_TASK_AMOUNT} satoshis!", "create_task"
            )
        if amount > global_constants.MAX_TASK_AMOUNT:
            raise InvalidAmountError(
                f"The amount must be at most {global_constants.MAX_TASK_AMOUNT} satoshis!", "create_task"
            )
        return amount

    async def create_task(self, description: str, amount: Any) -> Task:
        """
        Create a task token and add the task to the top of the collection.

        Args:
            description: What needs to be done
            amount: Value to lock until the task is completed (at least MIN_TASK_AMOUNT)

        Returns:
            Task: The new task, already in the collection

        Raises:
            MissingDescriptionError: If the description is empty
            InvalidAmountError: If the amount is invalid
            CryptoError, ScriptError, LedgerError: If a collaborator fails; nothing is added
        """
        if not isinstance(description, str) or description == "":
            raise MissingDescriptionError()
        amount = self.validate_amount(amount)

        self.create_loading = True
        try:
            # Only this user can derive the key, so only they can read the task back
            encrypted_task = await self.encryption.encrypt(description.encode(), self.protocol_id, self.key_id)

            locking_script = await self.script_codec.create(
                [global_constants.NAMESPACE_MARKER, encrypted_task],
                self.protocol_id,
                self.key_id
            )

            result = await self.action_submitter.create_action(
                description=f"{global_constants.CREATE_ACTION_PREFIX}{description}",
                outputs=[ActionOutput(
                    satoshis=amount,
                    script=locking_script,
                    basket=global_constants.TASK_BASKET,
                    description=global_constants.NEW_OUTPUT_DESCRIPTION
                )],
                log=''
            )
            self._log_action(result)

            task = Task(
                description=description,
                amount=amount,
                token=Token(
                    locking_script=locking_script,
                    txid=result.txid or '',
                    output_index=0,
                    envelope=result.envelope
                )
            )
            self.collection.prepend(task)
            logger.info(f"TaskTokenEngine.create_task: Created task {task.token.txid} for {amount} satoshis")
            return task

        except TaskTokenError as e:
            logger.error(f"TaskTokenEngine.create_task: Failed to create task: {e}")
            raise
        except Exception as e:
            logger.error(f"TaskTokenEngine.create_task: Unexpected error: {e}")
            logger.error(traceback.format_exc())
            raise
        finally:
            self.create_loading = False

    # LIST

    async def list_tasks(self) -> list[Task]:
        """
        Rebuild the collection from the ledger.

        Each basket output is decoded and decrypted independently. An output that fails becomes a
        placeholder task instead of hiding the rest of the list.

        Returns:
            list[Task]: The tasks, newest first

        Raises:
            TaskTokenError: If the basket query itself fails, except when no identity exists yet
        """
        self.tasks_loading = True
        try:
            outputs = await self.basket_reader.get_transaction_outputs(
                basket=global_constants.TASK_BASKET,
                spendable=True,
                include_envelope=True
            )

            results = await asyncio.gather(*(self._decode_output(output) for output in outputs))

            placeholders = sum(1 for result in results if result.is_placeholder)
            if placeholders:
                logger.warning(f"TaskTokenEngine.list_tasks: {placeholders} of {len(results)} tasks could not be decrypted")

            # Ledger order is oldest first
            tasks = [result.task for result in reversed(results)]
            self.collection.replace(tasks)
            logger.debug(f"TaskTokenEngine.list_tasks: Loaded {len(tasks)} tasks")
            return tasks

        except IdentityUnavailableError as e:
            # Expected until a wallet is set up; the agent monitor handles prompting the user
            logger.debug(f"TaskTokenEngine.list_tasks: Skipping load: {e}")
            return self.tasks
        except Exception as e:
            logger.error(f"TaskTokenEngine.list_tasks: Failed to load tasks: {e}")
            raise
        finally:
            self.tasks_loading = False

    async def _decode_output(self, output: BasketOutput) -> TaskDecodeResult:
        token = Token(
            locking_script=output.output_script,
            txid=output.txid,
            output_index=output.vout,
            envelope=output.envelope
        )
        try:
            decoded = self.script_codec.decode(output.output_script)
            if len(decoded.fields) < 2:
                raise ScriptError(f"Expected 2 fields, found {len(decoded.fields)}", "list_tasks")

            description = await self.encryption.decrypt(decoded.fields[1], self.protocol_id, self.key_id)
            return TaskDecodeResult(task=Task(description=description, amount=output.amount, token=token))

        except Exception as e:
            logger.error(f"TaskTokenEngine._decode_output: Error decrypting task {output.txid}.{output.vout}: {e}")
            return TaskDecodeResult(
                task=Task(
                    description=global_constants.UNDECRYPTABLE_TASK_DESCRIPTION,
                    amount=output.amount,
                    token=token,
                    undecryptable=True
                ),
                error=str(e)
            )

    # COMPLETE

    @staticmethod
    def completion_description(task: Task) -> str:
        description = f'{global_constants.COMPLETE_ACTION_PREFIX}"{task.description}"'
        return description[:global_constants.MAX_ACTION_DESCRIPTION_LENGTH]

    async def complete_task(self, task: Optional[Task]) -> ActionResult:
        """
        Redeem a task's token, returning its amount to the user, and remove the task.

        Args:
            task: A task from create_task or list_tasks

        Returns:
            ActionResult: The redeeming ledger action

        Raises:
            IncompleteTaskDataError: If the task or its token data is missing; the ledger is not contacted
            RedemptionInProgressError: If this token is already being redeemed
            LedgerError: If the ledger rejects the redemption; the task stays in the collection
        """
        if task is None:
            raise IncompleteTaskDataError("No task selected.")

        token = task.token
        if token is None or not token.txid or token.output_index is None:
            raise IncompleteTaskDataError()

        if task.undecryptable:
            if not RuntimeConfig.ALLOW_UNDECRYPTABLE_COMPLETION:
                raise IncompleteTaskDataError("Task could not be decrypted and cannot be completed.")
            logger.warning(f"TaskTokenEngine.complete_task: Completing undecryptable task {token.txid}.{token.output_index}")

        outpoint = (token.txid, token.output_index)
        if RuntimeConfig.GUARD_CONCURRENT_REDEMPTION:
            if outpoint in self._redemptions_in_flight:
                raise RedemptionInProgressError(*outpoint)
            self._redemptions_in_flight.add(outpoint)

        self._completions_running += 1
        self.complete_loading = True
        try:
            # The same protocol and key as at creation, otherwise the proof won't fit the lock
            unlocking_script = await self.script_codec.redeem(
                self.protocol_id,
                self.key_id,
                token.txid,
                token.output_index,
                token.locking_script,
                task.amount
            )

            result = await self.action_submitter.create_action(
                description=self.completion_description(task),
                inputs=[ActionInput(
                    txid=token.txid,
                    output_index=token.output_index,
                    unlocking_script=unlocking_script,
                    spending_description=global_constants.SPENDING_DESCRIPTION,
                    envelope=token.envelope
                )],
                log=''
            )
            self._log_action(result)

            self.collection.remove(task)
            logger.info(f"TaskTokenEngine.complete_task: Completed task {token.txid}.{token.output_index}")
            return result

        except TaskTokenError as e:
            logger.error(f"TaskTokenEngine.complete_task: Error completing task: {e}")
            raise
        except Exception as e:
            logger.error(f"TaskTokenEngine.complete_task: Unexpected error: {e}")
            logger.error(traceback.format_exc())
            raise
        finally:
            self._redemptions_in_flight.discard(outpoint)
            self._completions_running -= 1
            self.complete_loading = self._completions_running > 0

    @staticmethod
    def _log_action(result: ActionResult):
        if result.log:
            logger.debug(f"Ledger action {result.txid}:\n{format_stamped_log(result.log)}")
