"""
pwcheck - Entry Script

Runs the command-line interface without installing the package:

    python pwcheck_main.py check --password 'hunter2'
    python pwcheck_main.py interactive

With no arguments the interactive menu is started.
"""

import sys

from pwcheck.cli import main

if __name__ == "__main__":
    argv = sys.argv[1:] or ["interactive"]
    try:
        sys.exit(main(argv))
    except KeyboardInterrupt:
        print("\nExiting...")
