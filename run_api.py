#!/usr/bin/env python3
"""
Entry point for the TokenWatch status API (uvicorn).
"""

import uvicorn
import sys
from pathlib import Path

# Allow running from any working directory
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from api.config import config
from utilities.config import config as tracker_config
from utilities.logger import setup_logging


def main():
    """Configure logging and serve api.main:app."""
    setup_logging(
        log_level=tracker_config.log_level,
        log_format=tracker_config.log_format,
        log_file=tracker_config.get_log_file_path(),
        debug=tracker_config.debug
    )

    print("Starting TokenWatch Status API")
    print(f"Host: {config.host}")
    print(f"Port: {config.port}")
    print(f"Debug: {config.debug}")
    print(f"Targets: {tracker_config.targets_file}")
    print(f"State directory: {tracker_config.state_dir}")
    print("=" * 50)

    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
