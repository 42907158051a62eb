"""
Mission Control MCP server
"""
