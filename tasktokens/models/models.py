from dataclasses import dataclass
from typing import Optional, Dict, Any, List

@dataclass
class Token:
    """
    The ledger output backing a task.
    The envelope is carried opaquely and handed back to the ledger on redemption.
    """
    locking_script: str  # hex
    txid: str
    output_index: Optional[int]
    envelope: Optional[Dict[str, Any]] = None

@dataclass(eq=False)
class Task:
    """
    A to-do item backed by a token.
    Tasks compare by identity, so two structurally equal tasks stay distinct in a collection.
    """
    description: str
    amount: int
    token: Optional[Token] = None
    undecryptable: bool = False

    def same_as(self, other: 'Task') -> bool:
        """Structural comparison, ignoring identity"""
        return (
            self.description == other.description
            and self.amount == other.amount
            and self.token == other.token
            and self.undecryptable == other.undecryptable
        )

@dataclass
class TaskDecodeResult:
    """Outcome of decoding a single basket output into a task"""
    task: Task
    error: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return self.error is not None

@dataclass
class DecodedScript:
    """Fields recovered from a locking script"""
    locking_public_key: str  # hex
    fields: List[bytes]
    signature: bytes

@dataclass
class ActionOutput:
    """A new output created by a ledger action"""
    satoshis: int
    script: str  # hex locking script
    basket: Optional[str] = None
    description: str = ''

@dataclass
class ActionInput:
    """A previous output redeemed by a ledger action"""
    txid: str
    output_index: int
    unlocking_script: str  # hex
    spending_description: str = ''
    envelope: Optional[Dict[str, Any]] = None

@dataclass
class ActionResult:
    """Result of a committed ledger action"""
    txid: str
    log: Optional[str] = None
    envelope: Optional[Dict[str, Any]] = None

@dataclass
class BasketOutput:
    """An unspent output returned from a basket query"""
    output_script: str  # hex
    amount: int
    txid: str
    vout: int
    envelope: Optional[Dict[str, Any]] = None
