from pathlib import Path

CONFIG_DIR = Path.home().joinpath("tasktokens")
CONFIG_FILENAME = "tasktokens_config.json"
LEDGER_FILENAME = "ledger.sqlite"

# TODO PROTOCOL CONSTANTS
# These must match exactly between the writer and the reader of a token
PROTOCOL_ID = 'todo list'
KEY_ID = '1'
NAMESPACE_MARKER = b'1ToDoDtKreEzbHYKFjmoBuduFmSXXUGZG'  # Namespace address of the ToDo protocol
TASK_BASKET = 'todo tokens'

# AMOUNTS (smallest ledger unit)
MIN_TASK_AMOUNT = 500
DEFAULT_TASK_AMOUNT = 1000
# Largest amount a ledger output can hold (signed 64-bit)
MAX_TASK_AMOUNT = 2**63 - 1

# DESCRIPTIONS
MAX_ACTION_DESCRIPTION_LENGTH = 128
CREATE_ACTION_PREFIX = 'Create a TODO task: '
COMPLETE_ACTION_PREFIX = 'Complete a TODO task: '
NEW_OUTPUT_DESCRIPTION = 'New ToDo list item'
SPENDING_DESCRIPTION = 'Complete a ToDo list item'
UNDECRYPTABLE_TASK_DESCRIPTION = '[error] Unable to decrypt task!'

# AGENT MONITOR
AGENT_POLL_INTERVAL = 1  # seconds

LEDGER_SERVICE_NAME = 'tasktokens-ledger'
