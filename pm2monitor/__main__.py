"""
Entry point for running the monitor via `python -m pm2monitor`.

Same as the pm2-monitor command.
"""

from .main import monitor_main

if __name__ == "__main__":
    monitor_main()
