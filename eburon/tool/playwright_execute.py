from pydantic import BaseModel, Field

from eburon.tool.base import ToolResult
from eburon.tool.browser_base import BrowserToolBase
from eburon.utils.logger import logger

_PLAYWRIGHT_DESCRIPTION = """
Executes JavaScript/Playwright code in the browser. Has access to 'page', 'context', and 'browser' objects. Returns the result of your code.
* The code is the body of an async function: use `await` freely and `return` the data you need.
* `page` is the page shown in the live view; reuse it instead of opening new tabs.
* Keep each execution small and focused; chain several calls for longer tasks.
* Example: `await page.goto("https://example.com"); return await page.title();`
"""


class PlaywrightExecuteInput(BaseModel):
    code: str = Field(
        ...,
        min_length=1,
        description="JavaScript body of an async function with page, context and browser in scope",
    )
    timeout_sec: int = Field(
        60, ge=1, le=300, description="Seconds before the execution is aborted"
    )


class PlaywrightExecute(BrowserToolBase):
    """Runs page-context automation code in the bound browser session"""

    name: str = "playwright_execute"
    description: str = _PLAYWRIGHT_DESCRIPTION
    input_model = PlaywrightExecuteInput

    async def execute(self, code: str, timeout_sec: int = 60, **kwargs) -> ToolResult:
        session_id = self.require_session()
        logger.info(f"Executing {len(code)} chars of Playwright code in {session_id}")
        result = await self.provider.execute_script(
            session_id, code, timeout_sec=timeout_sec
        )
        if not result.success:
            return self.fail_response(result.error or "Script execution failed")
        return self.success_response(result.result)
