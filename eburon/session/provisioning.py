"""Create, tear down and tidy the remote browser session"""

import json
import time
from typing import Optional

from eburon.config import config
from eburon.exceptions import (
    CreateInProgress,
    ProvisionError,
    SessionNotFound,
)
from eburon.session.models import BrowserProvider, BrowserSession
from eburon.session.registry import SessionRegistry
from eburon.utils.logger import logger

# Keeps the first real page, closes every other tab and focuses the survivor.
NORMALIZE_SCRIPT = """
const pages = context.pages();
if (pages.length === 0) {
  const fresh = await context.newPage();
  await fresh.bringToFront();
  return { kept: fresh.url(), closed: 0, total: 0 };
}
const isInternal = (url) => url === "about:blank" || url.startsWith("chrome-extension://");
const primary = pages.find((p) => !isInternal(p.url())) || pages[0];
let closed = 0;
for (const p of pages) {
  if (p !== primary) {
    try {
      await p.close();
      closed += 1;
    } catch (err) {}
  }
}
await primary.bringToFront();
return { kept: primary.url(), closed, total: pages.length };
"""


class BrowserProvisioner:
    """Owns the lifecycle of the one browser session the console drives"""

    def __init__(self, provider: BrowserProvider, registry: SessionRegistry):
        self.provider = provider
        self.registry = registry

    async def create_session(self) -> dict:
        """
        Provision a fresh headful browser.

        A request arriving while another creation is in flight gets the
        just-created session (marked ``reused``) when one is recent enough,
        otherwise CreateInProgress.

        Returns:
            The BrowserSession payload for the web client
        """
        if not await self.registry.try_begin_create():
            recent = await self.registry.recent_session()
            if recent is not None:
                logger.info(f"Creation in flight, reusing session {recent.session_id}")
                return {**recent.to_payload(), "reused": True}
            raise CreateInProgress()

        try:
            config.require_e2b_api_key()
            started = time.monotonic()

            previous = await self.registry.current_session()
            if previous is not None:
                await self._delete_quietly(previous.session_id)
                await self.registry.clear()

            await self.close_all_active_sessions()

            provisioned = await self.provider.create(headless=False)
            if not provisioned.live_view_url:
                # Without a live view the session is useless to the console.
                await self._delete_quietly(provisioned.session_id)
                raise ProvisionError(
                    f"Browser session {provisioned.session_id} has no live view URL"
                )

            await self.normalize_to_single_page(provisioned.session_id)

            session = BrowserSession(
                session_id=provisioned.session_id,
                live_view_url=provisioned.live_view_url,
                cdp_ws_url=provisioned.cdp_ws_url,
                spin_up_time=int((time.monotonic() - started) * 1000),
            )
            await self.registry.record_session(session)
            logger.info(
                f"Browser session {session.session_id} ready in {session.spin_up_time}ms"
            )
            return session.to_payload()
        finally:
            await self.registry.end_create()

    async def delete_session(self, session_id: str) -> bool:
        """
        Delete a session; one the provider no longer knows counts as deleted.

        Returns:
            False when the session was already gone
        """
        try:
            await self.provider.delete_by_id(session_id)
            logger.info(f"Deleted browser session {session_id}")
            return True
        except SessionNotFound:
            logger.info(f"Browser session {session_id} already gone")
            return False
        finally:
            await self.registry.clear(session_id)

    async def normalize_to_single_page(self, session_id: str) -> Optional[dict]:
        """
        Best-effort: leave exactly one focused page in the session.

        Stray tabs corrupt the live view, but failing to tidy them is never
        worth failing the caller over, so every error is logged and swallowed.
        """
        try:
            result = await self.provider.execute_script(
                session_id,
                NORMALIZE_SCRIPT,
                timeout_sec=config.agent.normalize_timeout,
            )
        except Exception as e:
            logger.warning(f"Page normalization failed for {session_id}: {e}")
            return None
        if not result.success:
            logger.warning(f"Page normalization failed for {session_id}: {result.error}")
            return None
        summary = result.result if isinstance(result.result, dict) else None
        logger.debug(f"Normalized pages for {session_id}: {json.dumps(summary)}")
        return summary

    async def close_all_active_sessions(self) -> int:
        """Best-effort delete of every live provider session; returns how many went"""
        closed = 0
        try:
            sessions = [s async for s in self.provider.list()]
        except Exception as e:
            logger.warning(f"Could not list browser sessions for cleanup: {e}")
            return closed

        for summary in sessions:
            if summary.deleted_at is not None:
                continue
            try:
                await self.provider.delete_by_id(summary.session_id)
                closed += 1
            except SessionNotFound:
                continue
            except Exception as e:
                logger.warning(f"Failed to close session {summary.session_id}: {e}")
        if closed:
            logger.info(f"Closed {closed} stale browser session(s)")
        return closed

    async def _delete_quietly(self, session_id: str) -> None:
        try:
            await self.provider.delete_by_id(session_id)
        except SessionNotFound:
            pass
        except Exception as e:
            logger.warning(f"Failed to delete previous session {session_id}: {e}")
