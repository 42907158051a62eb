"""
Daemon Entry Point

Allows running the daemon via: python -m mission_control.daemon
"""

from .notifications import main

if __name__ == "__main__":
    main()
