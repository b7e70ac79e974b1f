"""
Storefront - Main Entry Point

Synthesizes provisioning plans for the storefront topologies.

Usage:
    python main.py list
    python main.py synth --variant function-pipeline [--output plan.json]
    python main.py diff --variant function-pipeline --against plan.json
"""

import sys

from storefront.cli import main

if __name__ == "__main__":
    sys.exit(main())
