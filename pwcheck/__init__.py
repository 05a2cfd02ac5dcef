"""
pwcheck - Password Strength Checker & Breach Lookup

A small command-line tool that evaluates passwords, generates strong ones,
and checks them against known data breaches without ever sending the
password (or its full hash) over the network.

Key Features:
- Strength evaluation against a configurable policy
- Secure generation from a target bit strength
- Breach lookup: k-anonymity range API + embedded offline hash lists
- Optional local storage of labelled passwords (plaintext JSON, 0600)

Components:
- crypto.py: SHA-1 hashing and password generation
- strength.py: Policy checks and strength rating
- breach.py: Provider contract, offline datasets, provider aggregator
- hibp.py: Have I Been Pwned range API client
- store.py: JSON credential store with file locking and atomic writes
- config.py: Environment-driven configuration
- service.py: Facade used by the CLI
- cli.py: Command-line interface (uses built-in argparse)

Usage:
    pwcheck check --password 'hunter2'       # Evaluate a password
    pwcheck generate --bits 128              # Generate a password
    pwcheck save github --generate           # Generate and store
    pwcheck list                             # List stored labels
    pwcheck interactive                      # Menu-driven mode
"""

__version__ = "1.0.0"
__author__ = "pwcheck Team"
