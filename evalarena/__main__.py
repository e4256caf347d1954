"""
Entry point for running EvalArena as a module.

Usage:
    python -m evalarena serve
    python -m evalarena models
    python -m evalarena evaluate -m gpt-4o-mini -p "2+2?" -e 4
"""

from .cli import main

if __name__ == "__main__":
    exit(main())
