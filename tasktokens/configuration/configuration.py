from dataclasses import dataclass
from typing import Optional
from loguru import logger
import json
from pathlib import Path
import tasktokens.configuration.constants as global_constants

@dataclass
class AppConfig:
    """Configuration for a task tokens installation"""
    ledger_path: Path
    agent_poll_interval: float = global_constants.AGENT_POLL_INTERVAL
    log_level: str = "INFO"

    def __post_init__(self):
        """Normalize and validate configuration values"""
        if isinstance(self.ledger_path, str):
            self.ledger_path = Path(self.ledger_path).expanduser()

        try:
            self.agent_poll_interval = float(self.agent_poll_interval)
        except (TypeError, ValueError):
            raise ValueError(f"agent_poll_interval must be a number, got {self.agent_poll_interval!r}")

        if self.agent_poll_interval <= 0:
            raise ValueError(f"agent_poll_interval must be positive, got {self.agent_poll_interval}")

        self.log_level = self.log_level.upper()

class RuntimeConfig:
    """Runtime configuration settings"""
    # Completing a task whose description could not be decrypted still redeems its token
    ALLOW_UNDECRYPTABLE_COMPLETION: bool = True
    # Reject a second completion of the same token while the first is in flight
    GUARD_CONCURRENT_REDEMPTION: bool = True

def get_config_directory(config_dir: Optional[Path] = None) -> Path:
    """Returns the configuration directory, creating it if it doesn't exist"""
    config_dir = config_dir or global_constants.CONFIG_DIR
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir

def default_app_config(config_dir: Optional[Path] = None) -> AppConfig:
    return AppConfig(ledger_path=get_config_directory(config_dir) / global_constants.LEDGER_FILENAME)

def get_app_config(config_dir: Optional[Path] = None) -> AppConfig:
    """Get the current configuration, falling back to defaults when no file exists"""
    config_file = get_config_directory(config_dir) / global_constants.CONFIG_FILENAME

    if not config_file.exists():
        logger.debug(f"No configuration file found at {config_file}, using defaults")
        return default_app_config(config_dir)

    return load_app_config(config_file, config_dir)

def load_app_config(config_path: str | Path, config_dir: Optional[Path] = None) -> AppConfig:
    """Load configuration from JSON file"""
    with open(config_path, 'r') as file:
        config_data = json.load(file)
    defaults = default_app_config(config_dir)
    return AppConfig(
        ledger_path=config_data.get('ledger_path', defaults.ledger_path),
        agent_poll_interval=config_data.get('agent_poll_interval', defaults.agent_poll_interval),
        log_level=config_data.get('log_level', defaults.log_level)
    )

def save_app_config(app_config: AppConfig, config_dir: Optional[Path] = None) -> Path:
    """Write configuration to the JSON file in the configuration directory"""
    config_file = get_config_directory(config_dir) / global_constants.CONFIG_FILENAME
    with open(config_file, 'w') as file:
        json.dump({
            'ledger_path': str(app_config.ledger_path),
            'agent_poll_interval': app_config.agent_poll_interval,
            'log_level': app_config.log_level
        }, file, indent=4)
    return config_file
