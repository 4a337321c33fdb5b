"""Run the live PM2 monitor."""

from pm2monitor.main import monitor_main

if __name__ == "__main__":
    monitor_main()
