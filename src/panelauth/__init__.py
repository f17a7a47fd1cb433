"""panelauth: OAuth 2.1 authorization server and API key gateway for MCP servers."""

__version__ = "0.3.0"
