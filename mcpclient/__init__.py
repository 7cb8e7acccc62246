"""Model Context Protocol client: stdio, SSE and streamable HTTP transports, a client API,
an interactive shell and Markdown documentation helpers."""

__version__ = "0.1.0"
__all__ = ["protocol", "stdio_transport", "sse_transport", "streamable_http", "client", "docgen", "cli"]