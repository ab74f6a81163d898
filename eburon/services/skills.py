"""Listing of the locally installed OpenClaw skills"""

import asyncio
import json
import os
import shutil
from typing import Optional

from eburon.config import SkillsSettings, config
from eburon.exceptions import EburonError
from eburon.utils.logger import logger

HOMEBREW_BIN = "/opt/homebrew/bin/openclaw"


class SkillsListingError(EburonError):
    code = "internal-error"
    status_code = 500


def resolve_binary(settings: SkillsSettings) -> str:
    if settings.binary:
        return settings.binary
    if os.path.exists(HOMEBREW_BIN):
        return HOMEBREW_BIN
    return shutil.which("openclaw") or "openclaw"


async def list_skills(settings: Optional[SkillsSettings] = None) -> dict:
    """
    Run ``openclaw skills list --json`` and return its parsed output.

    Raises:
        SkillsListingError: the binary is missing, exits non-zero, times out,
            prints more than the output cap or prints something that is not JSON
    """
    settings = settings or config.skills
    binary = resolve_binary(settings)
    cwd = settings.workspace_dir or os.getcwd()

    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            "skills",
            "list",
            "--json",
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise SkillsListingError(f"Cannot start {binary}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(), timeout=settings.timeout
        )
    except asyncio.TimeoutError as e:
        process.kill()
        await process.wait()
        raise SkillsListingError(
            f"{binary} did not finish within {settings.timeout}s"
        ) from e

    if len(stdout) > settings.max_output_bytes:
        raise SkillsListingError(
            f"{binary} printed more than {settings.max_output_bytes} bytes"
        )
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise SkillsListingError(
            f"{binary} exited with code {process.returncode}: {detail}"
        )

    try:
        parsed = json.loads(stdout.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SkillsListingError(f"Invalid JSON from {binary}: {e}") from e

    if not isinstance(parsed, dict):
        parsed = {"skills": parsed}
    logger.debug(f"Listed {len(parsed.get('skills', []))} OpenClaw skills")
    return parsed
