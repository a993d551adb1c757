from datetime import datetime, timezone
from typing import Optional
from loguru import logger

def stamp_log(log: Optional[str], service: str, message: str) -> str:
    """Append a timestamped entry to an action log"""
    entry = f"{datetime.now(timezone.utc).isoformat()} {service} {message}"
    return f"{log}\n{entry}" if log else entry

def format_stamped_log(log: str) -> str:
    """
    Render an action log with the elapsed time between entries.

    Args:
        log: Newline-separated entries of the form '<iso timestamp> <service> <message>'

    Returns:
        str: One line per entry, e.g. '(+12ms) tasktokens-ledger: committed ...'
    """
    lines = []
    previous = None
    for entry in log.strip().splitlines():
        parts = entry.split(' ', 2)
        try:
            timestamp = datetime.fromisoformat(parts[0])
        except (ValueError, IndexError):
            logger.debug(f"format_stamped_log: Skipping malformed entry: {entry}")
            continue

        service = parts[1] if len(parts) > 1 else ''
        message = parts[2] if len(parts) > 2 else ''
        elapsed = 0 if previous is None else int((timestamp - previous).total_seconds() * 1000)
        lines.append(f"(+{elapsed}ms) {service}: {message}")
        previous = timestamp

    return '\n'.join(lines)
