from eburon.session.models import (
    BrowserProvider,
    BrowserSession,
    ProvisionedBrowser,
    ScreenRegion,
    ScriptResult,
    SessionSummary,
)
from eburon.session.provisioning import BrowserProvisioner
from eburon.session.registry import SessionRegistry


__all__ = [
    "BrowserProvider",
    "BrowserProvisioner",
    "BrowserSession",
    "ProvisionedBrowser",
    "ScreenRegion",
    "ScriptResult",
    "SessionRegistry",
    "SessionSummary",
]
