"""
PM2 Monitor - live view of PM2 processes and their nginx routes.

Shows each process's state, listening port and the service paths nginx
routes to it, refreshed twice a second. Also provides a bulk restart
command and a service path lookup.
"""

__version__ = "0.1.0"
