"""
Entry point for running the engine as a module.

Usage:
    python -m schedule_engine solve input.json -o schedule.json
    python -m schedule_engine diagnose input.json
    python -m schedule_engine check input.json schedule.json
    python -m schedule_engine view input.json schedule.json --teacher "Rossi Mario"
"""

from schedule_engine.cli import main

if __name__ == "__main__":
    main()
