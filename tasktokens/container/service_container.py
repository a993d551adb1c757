# Standard Library
from dataclasses import dataclass
from typing import Optional, Callable
from pathlib import Path
import getpass

# Third Party
from loguru import logger

# Local
from ..configuration.configuration import AppConfig, get_app_config
from ..ledger.local_ledger import LocalLedger
from ..task_processing.task_engine import TaskTokenEngine
from ..utilities.agent_monitor import AgentMonitor, AgentObserver
from ..utilities.credentials import CredentialManager, InvalidPasswordError, get_database_path
from ..utilities.encryption import MessageEncryption
from ..utilities.keys import KeyDeriver
from ..utilities.script_codec import PushDropCodec

@dataclass
class ServiceContainer:
    """Container for task token service initialization"""
    app_config: AppConfig
    key_deriver: KeyDeriver
    ledger: LocalLedger
    engine: TaskTokenEngine
    agent_monitor: AgentMonitor

    @classmethod
    def initialize(
        cls,
        password_prompt: Optional[Callable[[str], str]] = None,
        config_dir: Optional[Path] = None,
        agent_observer: Optional[AgentObserver] = None,
        max_password_attempts: int = 3
    ) -> 'ServiceContainer':
        """
        Initialize all services, unlocking the wallet seed with the user's password

        Args:
            password_prompt: Optional function to get the password (defaults to getpass.getpass)
            config_dir: Optional configuration directory (defaults to ~/tasktokens)
            agent_observer: Optional callback for agent availability changes
            max_password_attempts: Number of password attempts before giving up
        """
        password_prompt = password_prompt or getpass.getpass
        app_config = get_app_config(config_dir)

        wallet_seed = None
        credentials_path = get_database_path(config_dir)
        if credentials_path.exists():
            for attempt in range(max_password_attempts):
                try:
                    credential_manager = CredentialManager(
                        password=password_prompt("Enter your password: "),
                        db_path=credentials_path
                    )
                    wallet_seed = credential_manager.get_wallet_seed()
                    break
                except ValueError:
                    print("Invalid password. Please try again.")
            else:
                raise InvalidPasswordError("Too many invalid password attempts")
        else:
            logger.debug(f"ServiceContainer.initialize: No credentials at {credentials_path}")

        return cls.from_seed(wallet_seed, app_config, agent_observer)

    @classmethod
    def from_seed(
        cls,
        wallet_seed: Optional[str],
        app_config: AppConfig,
        agent_observer: Optional[AgentObserver] = None
    ) -> 'ServiceContainer':
        """Wire services around a wallet seed. Without a seed, ledger operations report no identity."""
        key_deriver = KeyDeriver(wallet_seed)
        identity_key = key_deriver.identity_key if key_deriver.has_identity else None

        ledger = LocalLedger(app_config.ledger_path, identity_key)
        engine = TaskTokenEngine(
            encryption=MessageEncryption(key_deriver),
            script_codec=PushDropCodec(key_deriver),
            action_submitter=ledger,
            basket_reader=ledger
        )
        agent_monitor = AgentMonitor(
            probe=ledger.check_for_agent,
            interval=app_config.agent_poll_interval,
            observer=agent_observer
        )
        return cls(
            app_config=app_config,
            key_deriver=key_deriver,
            ledger=ledger,
            engine=engine,
            agent_monitor=agent_monitor
        )
