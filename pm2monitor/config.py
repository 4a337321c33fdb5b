"""
Configuration for the PM2 monitor.

Loads settings from environment variables with sensible defaults.
The rotating log file is stored in ~/.pm2monitor/
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PAGER_MIN_LINES = 20
PAGER_MAX_LINES = 30


@dataclass
class Config:
    """Monitor configuration."""

    # Paths
    data_dir: Path = Path.home() / ".pm2monitor"
    monitor_log: Path = None

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))
    log_level: str = os.environ.get("PM2MONITOR_LOG_LEVEL", "INFO")

    # Reverse proxy
    nginx_config: str = os.environ.get("NGINX_CONFIG", "/etc/nginx/sites-available/default")

    # PM2
    pm2_bin: str = os.environ.get("PM2_BIN", "pm2")
    pm2_timeout: int = int(os.environ.get("PM2_TIMEOUT", "30"))

    # Monitoring
    tick_interval_ms: int = int(os.environ.get("MONITOR_TICK_MS", "500"))
    port_backend: str = os.environ.get("PORT_BACKEND", "lsof")  # lsof or psutil
    port_timeout: int = int(os.environ.get("PORT_TIMEOUT", "5"))
    discovery_workers: int = int(os.environ.get("DISCOVERY_WORKERS", "1"))

    # Environment pager
    env_file_name: str = os.environ.get("ENV_FILE_NAME", ".env")
    pager_lines: int = int(os.environ.get("PAGER_LINES", "25"))

    def __post_init__(self):
        """Initialize derived paths and create directories."""
        self.monitor_log = self.data_dir / "pm2monitor.log"
        self.pager_lines = min(max(self.pager_lines, PAGER_MIN_LINES), PAGER_MAX_LINES)
        if self.discovery_workers < 1:
            self.discovery_workers = 1

        self.data_dir.mkdir(parents=True, exist_ok=True)


config = Config()
