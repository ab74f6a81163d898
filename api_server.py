#!/usr/bin/env python3
"""
FastAPI server for the Eburon browser console
POST /api/create-browser to get a live browser, then POST /api/agent with a
task; the run comes back as JSON or as an SSE stream
"""

import os
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import AliasChoices, Field

from eburon.config import LLMSettings, config
from eburon.e2b import E2BBrowserProvider
from eburon.exceptions import ConfigurationError, EburonError, ValidationError
from eburon.llm import LLM
from eburon.run import AgentRunOrchestrator, AgentRunRequest
from eburon.run.transport import SSE_HEADERS, normalize_error
from eburon.schema import CamelModel
from eburon.services.prompt_enhancer import enhance_prompt
from eburon.services.remote_shell import check_token, run_remote_command
from eburon.services.skills import SkillsListingError, list_skills
from eburon.session import BrowserProvisioner, SessionRegistry
from eburon.session.models import BrowserProvider
from eburon.utils.logger import logger


class DeleteBrowserRequest(CamelModel):
    session_id: Optional[str] = None


class EnhancePromptRequest(CamelModel):
    prompt: Optional[str] = None
    server_target: Optional[str] = Field(
        None, validation_alias=AliasChoices("serverTarget", "backendSelection", "server_target")
    )


class RemoteCommandRequest(CamelModel):
    command: Optional[str] = None


def wants_event_stream(request: Request, body: AgentRunRequest) -> bool:
    return body.stream or "text/event-stream" in request.headers.get("accept", "")


def create_app(
    provider: Optional[BrowserProvider] = None,
    registry: Optional[SessionRegistry] = None,
    llm_factory: Callable[[LLMSettings], LLM] = LLM,
) -> FastAPI:
    """
    Build the API with its services on ``app.state``.

    Tests pass a fake provider and model factory; production uses E2B and
    the OpenAI-compatible backends from the configuration.
    """
    app = FastAPI(title="Eburon Browser Console API")

    # Enable CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.registry = registry or SessionRegistry(
        recent_window_ms=config.registry.recent_window_ms
    )
    app.state.provider = provider or E2BBrowserProvider()
    app.state.provisioner = BrowserProvisioner(app.state.provider, app.state.registry)
    app.state.orchestrator = AgentRunOrchestrator(
        app.state.provider, app.state.provisioner, llm_factory=llm_factory
    )
    app.state.llm_factory = llm_factory

    @app.exception_handler(EburonError)
    async def eburon_error_handler(request: Request, exc: EburonError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request body",
                "code": ValidationError.code,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} raised")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(exc), "code": "internal-error"},
        )

    @app.post("/api/create-browser")
    async def create_browser(request: Request):
        """
        Provision the console's browser, closing whatever ran before

        Returns: sessionId, liveViewUrl, cdpWsUrl and spinUpTime
        """
        try:
            session = await request.app.state.provisioner.create_session()
        except ConfigurationError as e:
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "error": "MISSING_API_KEY",
                    "message": e.message,
                    "code": e.code,
                },
            )
        return {"success": True, **session}

    @app.post("/api/delete-browser")
    async def delete_browser(body: DeleteBrowserRequest, request: Request):
        """Close a browser session; closing one that is already gone succeeds"""
        if not body.session_id:
            raise ValidationError("Missing sessionId")

        deleted = await request.app.state.provisioner.delete_session(body.session_id)
        message = (
            "Browser session closed successfully"
            if deleted
            else "Browser session already closed or not found"
        )
        return {"success": True, "message": message}

    @app.post("/api/agent")
    async def run_agent(body: AgentRunRequest, request: Request):
        """
        Run a task against a browser session

        Returns: the run result as JSON, or an SSE stream of init, step,
        text, tool and final events when streaming was requested
        """
        orchestrator: AgentRunOrchestrator = request.app.state.orchestrator
        # Validation and backend errors surface as JSON even for stream requests
        prepared = await orchestrator.prepare(body)
        logger.info(
            f"Agent run on {prepared.session_id} via {prepared.server_target}: "
            f"{prepared.task[:120]}"
        )

        if wants_event_stream(request, body):
            return StreamingResponse(
                orchestrator.stream(
                    body, prepared=prepared, is_disconnected=request.is_disconnected
                ),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        result = await orchestrator.run(body, prepared=prepared)
        return JSONResponse(
            status_code=200 if result.success else 500, content=result.to_payload()
        )

    @app.post("/api/enhance-prompt")
    async def enhance(body: EnhancePromptRequest, request: Request):
        """Rewrite a rough task into a sharper instruction for the agent"""
        if not body.prompt:
            raise ValidationError("Prompt is required")

        try:
            optimized = await enhance_prompt(
                body.prompt,
                body.server_target,
                llm_factory=request.app.state.llm_factory,
            )
        except EburonError:
            raise
        except Exception as e:
            logger.error(f"Prompt enhancement failed: {e}")
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Failed to optimize prompt"},
            )
        return {"optimizedPrompt": optimized}

    @app.post("/api/vps-deploy")
    async def vps_deploy(
        body: RemoteCommandRequest,
        x_vps_deploy_token: Optional[str] = Header(None),
    ):
        """Run one operator command on the deployment host over SSH"""
        check_token(x_vps_deploy_token)
        if not body.command:
            raise ValidationError("No command provided")

        try:
            output = await run_remote_command(body.command)
        except EburonError:
            raise
        except Exception as e:
            logger.error(f"Remote command failed: {e}")
            return JSONResponse(
                status_code=500, content={"success": False, "error": str(e)}
            )
        return {"success": True, "term_output": output}

    @app.get("/api/openclaw/skills")
    async def openclaw_skills():
        """List the OpenClaw skills installed on this host"""
        try:
            skills = await list_skills()
        except SkillsListingError as e:
            logger.error(f"Skill listing failed: {e.message}")
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": "Failed to list OpenClaw skills",
                    "details": normalize_error(e),
                },
            )
        return {"success": True, **skills}

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        return {"status": "healthy", **request.app.state.registry.snapshot()}

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))

    logger.info(f"Eburon console API on http://localhost:{port} (docs at /docs)")
    logger.info("POST /api/create-browser, then POST /api/agent with sessionId and task")

    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
