"""
Entry point for running multi-ai as a module.

Enables execution via:
    python -m multi_ai [command] [options]

This is equivalent to running the installed CLI:
    multi-ai [command] [options]

Examples:
    python -m multi_ai --help
    python -m multi_ai prompt "What is 2+2?" -s chatgpt,claude
    python -m multi_ai cookies import cookies.txt -s chatgpt
"""

from multi_ai.cli import app

if __name__ == "__main__":
    app()
