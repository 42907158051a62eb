"""
MCP Server Entry Point

Allows running the server via: python -m mission_control.server
"""

from .server import main

if __name__ == "__main__":
    main()
