from eburon.e2b.provider import E2BBrowserProvider
from eburon.e2b.sandbox import BrowserSandbox, create_sandbox


__all__ = ["E2BBrowserProvider", "BrowserSandbox", "create_sandbox"]
