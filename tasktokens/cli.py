import argparse
import asyncio
import getpass
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from xrpl.core import addresscodec
from xrpl.core.keypairs import generate_seed

import tasktokens.configuration.constants as global_constants
from tasktokens.configuration.configuration import get_app_config
from tasktokens.container.service_container import ServiceContainer
from tasktokens.utilities.credentials import (
    CredentialManager,
    InvalidPasswordError,
    WalletSeedExistsError,
    get_database_path,
)
from tasktokens.utilities.exceptions import TaskTokenError
from tasktokens.utilities.keys import KeyDeriver

def configure_logging(level: str):
    logger.remove()
    logger.add(sys.stderr, level=level)

def setup_wallet(config_dir: Optional[Path], generate: bool, force: bool = False) -> int:
    password = getpass.getpass("Choose a password: ")
    if password != getpass.getpass("Confirm password: "):
        print("Passwords do not match.")
        return 1

    try:
        credential_manager = CredentialManager(password=password, db_path=get_database_path(config_dir))
    except ValueError as e:
        print(f"Could not open the wallet store: {e}")
        return 1

    if credential_manager.has_wallet_seed() and not force:
        print("A wallet seed is already stored. Tasks locked under it cannot be listed or completed "
              "with a different seed. Use --force to replace it.")
        return 1

    wallet_seed = generate_seed() if generate else getpass.getpass("Enter wallet seed: ").strip()
    try:
        addresscodec.decode_seed(wallet_seed)
    except Exception as e:
        print(f"Invalid wallet seed: {e}")
        return 1

    try:
        credential_manager.set_wallet_seed(wallet_seed, overwrite=force)
    except WalletSeedExistsError as e:
        print(f"Error: {e}")
        return 1
    print(f"Wallet stored. Identity key: {KeyDeriver(wallet_seed).identity_key}")
    if generate:
        print(f"Back up your new wallet seed: {wallet_seed}")
    return 0

def print_tasks(tasks) -> None:
    if not tasks:
        print("No ToDo Items. Use 'tasktokens create' to start a task.")
        return
    for index, task in enumerate(tasks, start=1):
        print(f"{index:>3}. [ ] {task.description} ({task.amount} satoshis)")

async def run_command(args: argparse.Namespace, container: ServiceContainer) -> int:
    engine = container.engine

    match args.command:
        case 'list':
            print_tasks(await engine.list_tasks())
        case 'create':
            task = await engine.create_task(args.description, args.amount)
            print(f"Task successfully created! ({task.token.txid})")
        case 'complete':
            tasks = await engine.list_tasks()
            if not 1 <= args.index <= len(tasks):
                print(f"No task number {args.index}. Run 'tasktokens list' to see your tasks.")
                return 1
            task = tasks[args.index - 1]
            await engine.complete_task(task)
            print(f"Congrats! Task complete. You received back your {task.amount} satoshis.")
        case 'status':
            available = await container.agent_monitor.check_once()
            print("Wallet agent available." if available else "Wallet agent not found. Run 'tasktokens setup-wallet'.")
            return 0 if available else 1
    return 0

def main():
    parser = argparse.ArgumentParser(description="ToDo list backed by value-bearing task tokens")
    parser.add_argument("--config-dir", type=Path, default=None,
                        help=f"Configuration directory (default: {global_constants.CONFIG_DIR})")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    setup_wallet_parser = subparsers.add_parser('setup-wallet', help='Store the wallet seed used to lock tasks')
    setup_wallet_parser.add_argument("--generate", action="store_true", help="Generate a new wallet seed")
    setup_wallet_parser.add_argument("--force", action="store_true",
                                     help="Replace an existing wallet seed. Tasks locked under it become unreachable")

    subparsers.add_parser('list', help='List your tasks, newest first')

    create_parser = subparsers.add_parser('create', help='Create a task, locking an amount until it is done')
    create_parser.add_argument("description", help="Task to complete")
    create_parser.add_argument("--amount", type=int, default=global_constants.DEFAULT_TASK_AMOUNT,
                               help=f"Completion amount in satoshis (minimum {global_constants.MIN_TASK_AMOUNT})")

    complete_parser = subparsers.add_parser('complete', help='Complete a task and receive its amount back')
    complete_parser.add_argument("index", type=int, help="Task number as shown by 'list'")

    subparsers.add_parser('status', help='Check whether the wallet agent is available')

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return

    configure_logging(get_app_config(args.config_dir).log_level)

    if args.command == 'setup-wallet':
        sys.exit(setup_wallet(args.config_dir, args.generate, args.force))

    try:
        container = ServiceContainer.initialize(config_dir=args.config_dir)
        sys.exit(asyncio.run(run_command(args, container)))
    except (TaskTokenError, InvalidPasswordError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(130)
