import os
import threading
import tomllib
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from eburon.exceptions import ConfigurationError


def get_project_root() -> Path:
    """Get the project root directory"""
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = get_project_root()


class LLMSettings(BaseModel):
    """Resolved settings for one model backend profile"""

    name: str = Field(..., description="Backend profile key")
    model: str = Field(..., description="Model name")
    base_url: str = Field(..., description="OpenAI-compatible API base URL")
    api_key: str = Field(..., description="API key")
    max_tokens: int = Field(4096, description="Maximum number of tokens per request")
    temperature: float = Field(1.0, description="Sampling temperature")


class BackendProfile(BaseModel):
    """Where a backend profile reads its endpoint, credential and model from"""

    key: str
    label: str
    base_url_env: str
    api_key_env: str
    model_env: str
    default_base_url: Optional[str] = None
    default_api_key: Optional[str] = None
    default_model: str = "kimi-k2-thinking:cloud"


BACKEND_PROFILES: Dict[str, BackendProfile] = {
    "vps": BackendProfile(
        key="vps",
        label="VPS Server",
        base_url_env="OLLAMA_BASE_URL",
        api_key_env="OLLAMA_API_KEY",
        model_env="OLLAMA_MODEL",
        default_base_url="http://localhost:11434/v1",
        default_api_key="ollama",
    ),
    "cloud-eu": BackendProfile(
        key="cloud-eu",
        label="Cloud Server EU",
        base_url_env="OLLAMA_CLOUD_BASE_URL",
        api_key_env="OLLAMA_CLOUD_API_KEY",
        model_env="OLLAMA_CLOUD_MODEL",
    ),
}
DEFAULT_BACKEND = "vps"


def normalize_server_target(value: Optional[str]) -> str:
    """Map a client-supplied selection key onto the closed set of profiles."""
    return "cloud-eu" if value == "cloud-eu" else DEFAULT_BACKEND


class BackendOverrides(BaseModel):
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None
    max_tokens: int = Field(4096, description="Maximum number of tokens per request")
    temperature: float = Field(1.0, description="Sampling temperature")


class E2BSettings(BaseModel):
    """Configuration for the E2B browser sandboxes"""

    e2b_api_key: Optional[str] = Field(
        None, description="E2B API key from https://e2b.dev/docs"
    )
    template: str = Field(
        "eburon-browser",
        description="Desktop template with Xvfb, noVNC, Chromium and Node Playwright",
    )
    timeout: int = Field(3600, description="Sandbox lifetime in seconds")
    display: str = Field(":99", description="X display the browser renders on")
    vnc_port: int = Field(6080, description="noVNC web port inside the sandbox")
    cdp_port: int = Field(9222, description="Chromium remote debugging port")
    desktop_start_timeout: int = Field(
        60, description="Seconds allowed for the desktop startup script"
    )


class AgentSettings(BaseModel):
    max_steps: int = Field(20, description="Hard cap on agent loop steps")
    run_timeout: int = Field(
        300, description="Wall-clock deadline for synchronous runs in seconds"
    )
    normalize_timeout: int = Field(
        20, description="Timeout for the page normalization script in seconds"
    )
    deadline_grace: int = Field(
        30, description="Seconds a step in progress may run past the run deadline"
    )


class StreamSettings(BaseModel):
    lag_ms_min: int = Field(35, description="Lower bound of the per-chunk delay")
    lag_ms_max: int = Field(140, description="Upper bound of the per-chunk delay")
    max_lag_ms: int = Field(2000, description="Ceiling applied to client bounds")
    chunk_chars: int = Field(
        12, description="Target size of re-chunked text fragments"
    )


class RegistrySettings(BaseModel):
    recent_window_ms: int = Field(
        15000,
        description="Window in which a duplicate create request reuses the new session",
    )


class RemoteShellSettings(BaseModel):
    host: Optional[str] = None
    port: int = 22
    user: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = Field(None, description="Bearer token for the endpoint")
    timeout: int = Field(60, description="Connect and command timeout in seconds")


class SkillsSettings(BaseModel):
    binary: Optional[str] = Field(None, description="Path to the openclaw binary")
    workspace_dir: Optional[str] = None
    timeout: int = Field(15, description="Seconds before the listing is killed")
    max_output_bytes: int = Field(10 * 1024 * 1024)


class AppConfig(BaseModel):
    e2b_config: E2BSettings = Field(default_factory=E2BSettings)
    backends: Dict[str, BackendOverrides] = Field(default_factory=dict)
    agent_config: AgentSettings = Field(default_factory=AgentSettings)
    stream_config: StreamSettings = Field(default_factory=StreamSettings)
    registry_config: RegistrySettings = Field(default_factory=RegistrySettings)
    remote_shell_config: RemoteShellSettings = Field(
        default_factory=RemoteShellSettings
    )
    skills_config: SkillsSettings = Field(default_factory=SkillsSettings)


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if value else None


class Config:
    _instance = None
    _lock = threading.Lock()
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            with self._lock:
                if not self._initialized:
                    self._config = None
                    self._load_initial_config()
                    self._initialized = True

    @staticmethod
    def _get_config_path() -> Optional[Path]:
        root = PROJECT_ROOT
        config_path = root / "config" / "config.toml"
        if config_path.exists():
            return config_path
        example_path = root / "config" / "config.example.toml"
        if example_path.exists():
            return example_path
        return None

    def _load_config(self) -> dict:
        config_path = self._get_config_path()
        if config_path is None:
            return {}
        with config_path.open("rb") as f:
            return tomllib.load(f)

    def _load_initial_config(self):
        raw_config = self._load_config()

        config_dict = {
            "e2b_config": E2BSettings(**raw_config.get("e2b", {})),
            "backends": {
                name: BackendOverrides(**values)
                for name, values in raw_config.get("backends", {}).items()
                if isinstance(values, dict)
            },
            "agent_config": AgentSettings(**raw_config.get("agent", {})),
            "stream_config": StreamSettings(**raw_config.get("stream", {})),
            "registry_config": RegistrySettings(**raw_config.get("registry", {})),
            "remote_shell_config": RemoteShellSettings(
                **raw_config.get("remote_shell", {})
            ),
            "skills_config": SkillsSettings(**raw_config.get("skills", {})),
        }

        self._config = AppConfig(**config_dict)

    def reload(self):
        with self._lock:
            self._load_initial_config()

    @property
    def e2b(self) -> E2BSettings:
        """E2B settings; ``E2B_API_KEY`` overrides the file value"""
        settings = self._config.e2b_config
        api_key = _env("E2B_API_KEY") or settings.e2b_api_key
        template = _env("E2B_TEMPLATE") or settings.template
        return settings.model_copy(update={"e2b_api_key": api_key, "template": template})

    @property
    def agent(self) -> AgentSettings:
        return self._config.agent_config

    @property
    def stream(self) -> StreamSettings:
        return self._config.stream_config

    @property
    def registry(self) -> RegistrySettings:
        return self._config.registry_config

    @property
    def remote_shell(self) -> RemoteShellSettings:
        settings = self._config.remote_shell_config
        port = settings.port
        port_raw = _env("VPS_SSH_PORT")
        if port_raw:
            try:
                port = int(port_raw)
            except ValueError:
                port = settings.port
        return settings.model_copy(
            update={
                "host": _env("VPS_SSH_HOST") or settings.host,
                "user": _env("VPS_SSH_USER") or settings.user,
                "password": _env("VPS_SSH_PASSWORD") or settings.password,
                "port": port if port > 0 else 22,
                "token": _env("VPS_DEPLOY_TOKEN") or settings.token,
            }
        )

    @property
    def skills(self) -> SkillsSettings:
        settings = self._config.skills_config
        return settings.model_copy(
            update={
                "binary": _env("OPENCLAW_BIN") or settings.binary,
                "workspace_dir": _env("OPENCLAW_WORKSPACE_DIR")
                or settings.workspace_dir,
            }
        )

    def require_e2b_api_key(self) -> str:
        api_key = self.e2b.e2b_api_key
        if not api_key:
            raise ConfigurationError(
                "E2B_API_KEY environment variable is not set",
                missing=["E2B_API_KEY"],
            )
        return api_key

    def resolve_backend(self, server_target: Optional[str]) -> LLMSettings:
        """
        Resolve a backend selection key to concrete model settings.

        Environment variables win over ``[backends.<key>]`` in the config file,
        which wins over the profile defaults. A profile without a default for its
        endpoint or credential must get one from the environment or the file,
        otherwise ConfigurationError names the variables that are missing.
        """
        profile = BACKEND_PROFILES[normalize_server_target(server_target)]
        overrides = self._config.backends.get(profile.key, BackendOverrides())

        base_url = _env(profile.base_url_env) or overrides.base_url
        api_key = _env(profile.api_key_env) or overrides.api_key

        missing: List[str] = []
        if not base_url and not profile.default_base_url:
            missing.append(profile.base_url_env)
        if not api_key and not profile.default_api_key:
            missing.append(profile.api_key_env)
        if missing:
            verb = "is" if len(missing) == 1 else "are"
            raise ConfigurationError(
                f"{profile.label} selected but {' and/or '.join(missing)} {verb} not set.",
                missing=missing,
                code="backend-misconfigured",
                details={"serverTarget": profile.key},
            )

        return LLMSettings(
            name=profile.key,
            model=_env(profile.model_env) or overrides.model or profile.default_model,
            base_url=base_url or profile.default_base_url,
            api_key=api_key or profile.default_api_key,
            max_tokens=overrides.max_tokens,
            temperature=overrides.temperature,
        )


config = Config()
