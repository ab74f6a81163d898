"""E2B sandbox management for the browser console"""

import asyncio
import base64
import logging
import time
from typing import List, Optional

from e2b import CommandExitException, Sandbox

from eburon.config import E2BSettings
from eburon.utils.logger import logger

# Suppress verbose E2B logs
logging.getLogger("e2b").setLevel(logging.ERROR)

BROWSER_ROLE = "eburon-browser"

# Desktop services are pre-installed in the template; this only starts them.
DESKTOP_SETUP = """
#!/bin/bash
if [ -f /home/user/start_desktop.sh ]; then
    bash /home/user/start_desktop.sh > /tmp/startup.log 2>&1 &
else
    export DISPLAY={display}
    nohup Xvfb {display} -screen 0 1280x720x24 > /tmp/xvfb.log 2>&1 &
    sleep 2
    nohup fluxbox > /tmp/fluxbox.log 2>&1 &
    sleep 1
    nohup x11vnc -display {display} -forever -shared -nopw -rfbport 5900 > /tmp/vnc.log 2>&1 &
    sleep 1
    cd /home/user/novnc && nohup websockify --web . --daemon 0.0.0.0:{vnc_port} localhost:5900 > /tmp/websockify.log 2>&1 &
    DISPLAY={display} nohup chromium --no-first-run --no-default-browser-check \\
        --password-store=basic --start-maximized \\
        --remote-debugging-address=0.0.0.0 --remote-debugging-port={cdp_port} \\
        about:blank > /tmp/chromium.log 2>&1 &
fi

for i in $(seq 1 30); do
    if curl -s http://127.0.0.1:{cdp_port}/json/version > /dev/null 2>&1; then
        echo "browser ready"
        exit 0
    fi
    sleep 1
done
echo "browser not ready after 30s"
tail -20 /tmp/chromium.log 2>/dev/null
exit 1
"""


class CommandResult:
    """Outcome of a shell command run inside the sandbox"""

    def __init__(self, stdout: str, stderr: str, exit_code: int):
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        self.exit_code = exit_code

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def result(self) -> str:
        return self.stdout if self.ok else (self.stderr or self.stdout)


class BrowserSandbox:
    """
    Wrapper around an E2B Sandbox running the headful browser desktop.
    All methods are synchronous; callers run them in a worker thread.
    """

    def __init__(self, sandbox: Sandbox, settings: E2BSettings):
        self.sandbox = sandbox
        self.settings = settings
        self.id = sandbox.sandbox_id  # E2B uses sandbox_id, not id
        self.desktop_ready = False

    @property
    def live_view_url(self) -> str:
        host = self.sandbox.get_host(self.settings.vnc_port)
        return f"https://{host}/vnc.html?autoconnect=true&resize=scale&view_only=false"

    @property
    def cdp_ws_url(self) -> str:
        host = self.sandbox.get_host(self.settings.cdp_port)
        return f"wss://{host}"

    def exec(self, command: str, timeout: int = 30) -> CommandResult:
        """
        Execute a command in the sandbox.

        A non-zero exit is reported in the result; transport failures raise.
        """
        try:
            result = self.sandbox.commands.run(command, timeout=timeout)
        except CommandExitException as e:
            return CommandResult(e.stdout, e.stderr, e.exit_code)
        return CommandResult(result.stdout, result.stderr, result.exit_code)

    def filesystem_write(self, path: str, content: str) -> None:
        self.sandbox.files.write(path, content)

    def read_base64(self, command: str, timeout: int = 30) -> Optional[bytes]:
        """Run a command that prints base64 on stdout and decode it"""
        result = self.exec(command, timeout=timeout)
        if not result.ok or not result.stdout.strip():
            return None
        return base64.b64decode(result.stdout.strip())


async def create_sandbox(
    settings: E2BSettings,
    metadata: Optional[dict] = None,
) -> BrowserSandbox:
    """
    Create a browser sandbox and start its desktop services.

    Args:
        settings: E2B settings with a resolved API key
        metadata: Extra metadata for the sandbox

    Returns:
        BrowserSandbox instance
    """
    sandbox_start = time.time()
    logger.info(f"Creating E2B browser sandbox from template '{settings.template}'")

    # E2B SDK is synchronous - run in thread pool to avoid blocking event loop
    loop = asyncio.get_running_loop()
    sandbox = await loop.run_in_executor(
        None,
        lambda: Sandbox.create(
            template=settings.template,
            timeout=settings.timeout,
            metadata={"role": BROWSER_ROLE, **(metadata or {})},
            allow_internet_access=True,
            api_key=settings.e2b_api_key,
        ),
    )
    browser_sandbox = BrowserSandbox(sandbox, settings)

    desktop_setup = DESKTOP_SETUP.format(
        display=settings.display,
        vnc_port=settings.vnc_port,
        cdp_port=settings.cdp_port,
    )
    result = await loop.run_in_executor(
        None,
        lambda: browser_sandbox.exec(desktop_setup, timeout=settings.desktop_start_timeout),
    )
    browser_sandbox.desktop_ready = result.ok
    if not result.ok:
        logger.warning(
            f"Desktop startup for sandbox {browser_sandbox.id} did not confirm the browser: "
            f"{result.result[-500:]}"
        )

    logger.info(
        f"Sandbox {browser_sandbox.id} ready in {time.time() - sandbox_start:.2f}s"
    )
    return browser_sandbox


async def connect_sandbox(sandbox_id: str, settings: E2BSettings) -> BrowserSandbox:
    loop = asyncio.get_running_loop()
    sandbox = await loop.run_in_executor(
        None,
        lambda: Sandbox.connect(sandbox_id, api_key=settings.e2b_api_key),
    )
    return BrowserSandbox(sandbox, settings)


def kill_sandbox(sandbox_id: str, api_key: str) -> bool:
    """Kill a sandbox by id; False when E2B does not know it"""
    return Sandbox.kill(sandbox_id, api_key=api_key)


def list_sandboxes(api_key: str) -> List:
    """Collect running sandboxes from all pages"""
    paginator = Sandbox.list(api_key=api_key)
    sandboxes = []
    while True:
        items = paginator.next_items()
        if items:
            sandboxes.extend(items)
        # has_next is a property, not a method
        if not paginator.has_next:
            break
    return sandboxes
