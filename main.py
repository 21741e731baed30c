#!/usr/bin/env python3
"""
NewsCrawl - News Feed Ingestion Pipeline
========================================

Main application entry point.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Initialize database
    python main.py crawl 1                   # Crawl feed 1
    python main.py crawl-all                 # Crawl every enabled feed
"""

import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from newscrawl.cli import cli


if __name__ == '__main__':
    cli()
