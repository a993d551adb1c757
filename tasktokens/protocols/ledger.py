from typing import Protocol, Optional
from tasktokens.models.models import ActionOutput, ActionInput, ActionResult, BasketOutput

class LedgerActionSubmitter(Protocol):
    """Protocol for committing ledger actions"""

    async def create_action(
            self,
            description: str,
            outputs: Optional[list[ActionOutput]] = None,
            inputs: Optional[list[ActionInput]] = None,
            log: str = ''
        ) -> ActionResult:
        """
        Atomically commit a transaction creating the outputs and redeeming the inputs.

        Raises:
            LedgerError: If the action is rejected (double spend, bad proof, malformed)
            IdentityUnavailableError: If no wallet identity exists
        """
        ...

class TokenBasketReader(Protocol):
    """Protocol for reading a user's tokens by basket"""

    async def get_transaction_outputs(
            self,
            basket: str,
            spendable: bool = True,
            include_envelope: bool = True
        ) -> list[BasketOutput]:
        """
        Return the outputs tagged with the basket, oldest first.

        Raises:
            IdentityUnavailableError: If no wallet identity exists
        """
        ...
