"""Browser automation console: one live remote browser driven by an agent loop"""

__version__ = "0.1.0"
