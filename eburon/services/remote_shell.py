"""Operator-only command execution on the deployment host over SSH"""

import asyncio
import hmac
from typing import Optional

import paramiko

from eburon.config import RemoteShellSettings, config
from eburon.exceptions import ConfigurationError, EburonError
from eburon.utils.logger import logger


class Unauthorized(EburonError):
    code = "unauthorized"
    status_code = 401

    def __init__(self):
        super().__init__("Unauthorized")


def check_token(provided: Optional[str], settings: Optional[RemoteShellSettings] = None) -> None:
    """Reject unless a token is configured and the caller presented exactly it"""
    settings = settings or config.remote_shell
    if not settings.token or not hmac.compare_digest(
        (provided or "").encode(), settings.token.encode()
    ):
        raise Unauthorized()


def _run_command(settings: RemoteShellSettings, command: str) -> str:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        client.connect(
            hostname=settings.host,
            port=settings.port,
            username=settings.user,
            password=settings.password,
            timeout=settings.timeout,
            allow_agent=False,
            look_for_keys=False,
        )
        _, stdout, stderr = client.exec_command(command, timeout=settings.timeout)
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace")
        # Combined output: stdout when there is any, stderr otherwise
        return out or err
    finally:
        client.close()


async def run_remote_command(
    command: str, settings: Optional[RemoteShellSettings] = None
) -> str:
    """
    Run one shell command on the configured host.

    Raises:
        ConfigurationError: host, user or password is not configured
    """
    settings = settings or config.remote_shell
    missing = [
        name
        for name, value in (
            ("VPS_SSH_HOST", settings.host),
            ("VPS_SSH_USER", settings.user),
            ("VPS_SSH_PASSWORD", settings.password),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(
            "Missing VPS SSH config. Set VPS_SSH_HOST, VPS_SSH_USER, VPS_SSH_PASSWORD "
            "(and optional VPS_SSH_PORT).",
            missing=missing,
        )

    logger.info(f"Running remote command on {settings.host}:{settings.port}")
    # paramiko is blocking - run in thread pool to avoid blocking event loop
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _run_command, settings, command)
