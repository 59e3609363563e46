#!/usr/bin/env python
"""
Praetor Monitor - Entry Point

This is the main entry point for running the monitor from a source checkout.

Usage:
    python main.py dashboard
    python main.py jobs --watch
    python main.py logs <run-id> --follow

    # Or, once installed:
    praetor-monitor --help

Environment Variables:
    - PLATFORM_BASE_URL: Automation platform API root
    - PLATFORM_TOKEN: Bearer token sent with every request
    - POLL_JOBS_INTERVAL / POLL_RUN_INTERVAL: Polling cadence in seconds
    - LOG_LEVEL / LOG_FORMAT: Diagnostic logging on stderr
"""

import sys
from pathlib import Path

# Add project directory to Python path
project_dir = Path(__file__).parent.resolve()
sys.path.insert(0, str(project_dir))

from praetor_monitor.cli import main


if __name__ == "__main__":
    sys.exit(main())
