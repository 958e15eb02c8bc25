"""Configuration loading for the Operand client and CLI."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path

import keyring

from operand.constants import (
    DEFAULT_ENDPOINT,
    DEFAULT_RPC_ENDPOINT,
    DEFAULT_TIMEOUT_SECONDS,
    POLL_FAST_DELAY,
    POLL_FAST_ITERATIONS,
    POLL_SLOW_DELAY,
)
from operand.wait import BackoffSchedule

SERVICE_NAME = "operand"
KEY_NAME = "api_key"
API_KEY_ENV = "OPERAND_API_KEY"
ENDPOINT_ENV = "OPERAND_ENDPOINT"

DEFAULT_CONFIG_PATH = Path("config/operand.json")


def get_api_key() -> str:
    """Get the Operand API key: system keyring first, then OPERAND_API_KEY.

    Raises:
        RuntimeError: If no key is found anywhere, with setup instructions.
    """
    api_key = keyring.get_password(SERVICE_NAME, KEY_NAME)
    if api_key:
        return api_key

    api_key = os.environ.get(API_KEY_ENV)
    if api_key:
        return api_key

    raise RuntimeError(
        "Operand API key not found.\n"
        "Set it with: operand config set-api-key YOUR_KEY\n"
        f"Or: export {API_KEY_ENV}=your-key"
    )


@dataclass
class ClientConfig:
    """Settings shared by the REST and RPC clients.

    The poll fields feed :class:`~operand.wait.BackoffSchedule`; their
    defaults reproduce the documented 300ms x 9 then 1s schedule.
    """

    endpoint: str = DEFAULT_ENDPOINT
    rpc_endpoint: str = DEFAULT_RPC_ENDPOINT
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    poll_fast_delay: float = POLL_FAST_DELAY
    poll_slow_delay: float = POLL_SLOW_DELAY
    poll_fast_iterations: int = POLL_FAST_ITERATIONS
    api_key: str | None = None

    def backoff_schedule(self) -> BackoffSchedule:
        return BackoffSchedule(
            fast_delay=self.poll_fast_delay,
            slow_delay=self.poll_slow_delay,
            fast_iterations=self.poll_fast_iterations,
        )


def load_client_config(config_path: Path | None = None) -> ClientConfig:
    """Load client configuration from JSON, falling back to defaults.

    Reads ``config/operand.json`` when *config_path* is ``None``; a missing
    file yields the defaults.  Unknown keys are ignored.  ``OPERAND_ENDPOINT``
    overrides the REST endpoint.  The API key is never read from the file
    here; use :func:`get_api_key`.

    Args:
        config_path: Optional explicit path to the JSON file.

    Returns:
        ClientConfig with file values merged over defaults.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    field_names = {f.name for f in fields(ClientConfig)} - {"api_key"}
    kwargs = {k: v for k, v in data.items() if k in field_names}
    config = ClientConfig(**kwargs)

    endpoint = os.environ.get(ENDPOINT_ENV)
    if endpoint:
        config.endpoint = endpoint

    return config
