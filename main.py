#!/usr/bin/env python3
"""
Flow Orchestrator - Main entry point.

This is a thin wrapper around the CLI.

Usage:
    python main.py --help
    python main.py run ./workflow.json -i input.json
    python main.py plan ./workflow.json
    python main.py validate ./workflow.json
"""

from flow_orchestrator.cli import main

if __name__ == "__main__":
    main()
