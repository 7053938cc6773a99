#!/usr/bin/env python3
"""Store or remove Flint's partner credentials in the OS keychain.

Values stored here take precedence over ``.env`` (see config.py).

Usage:
    python -m scripts.manage_credentials status
    python -m scripts.manage_credentials set SNAPTRADE_CONSUMER_KEY
    python -m scripts.manage_credentials delete SNAPTRADE_CONSUMER_KEY
"""

import argparse
import getpass
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.credential_manager import (
    CREDENTIAL_KEYS,
    delete_credential,
    list_credentials,
    set_credential,
)


def show_status() -> int:
    stored = list_credentials()
    for key in sorted(CREDENTIAL_KEYS):
        marker = "+" if key in stored else " "
        print(f"  [{marker}] {key}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Manage keychain credentials")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show which credentials are stored")
    set_parser = sub.add_parser("set", help="Store a credential (prompts for the value)")
    set_parser.add_argument("key", choices=sorted(CREDENTIAL_KEYS))
    delete_parser = sub.add_parser("delete", help="Remove a credential")
    delete_parser.add_argument("key", choices=sorted(CREDENTIAL_KEYS))
    args = parser.parse_args()

    if args.command == "status":
        return show_status()
    if args.command == "set":
        value = getpass.getpass(f"{args.key}: ")
        if not set_credential(args.key, value):
            print(f"Failed to store {args.key}")
            return 1
        print(f"Stored {args.key}")
        return 0
    if not delete_credential(args.key):
        print(f"{args.key} was not in the keychain")
        return 1
    print(f"Deleted {args.key}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
