"""
MCP stdio core for partner: process transport, tool client, response
decoders and the provider facades the panes are written against.
"""

from partner_mcp.client import MCPClient
from partner_mcp.transport import StdioTransport

__all__ = ["MCPClient", "StdioTransport"]

__version__ = "0.4.0"
