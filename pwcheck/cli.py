"""
pwcheck - Command-Line Interface

Commands:
    check        Evaluate a password for strength and breaches
    generate     Generate a secure password
    save         Store a password under a label
    list         List stored passwords
    interactive  Menu-driven mode

Every library error is reported here as "ERROR: ..." with exit code 1.
"""

import argparse
import getpass
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .errors import ConfigError, PwcheckError, ValidationError
from .service import Assessment, PasswordService, build_service

logger = logging.getLogger(__name__)

# Added to the API timeout to form the deadline of a whole check
CHECK_GRACE_SECONDS = 2.0
MASK = "********"


# =============================================================================
# HELPERS
# =============================================================================

def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def check_timeout(config: Config) -> float:
    return config.pwned_api.timeout + CHECK_GRACE_SECONDS


def read_piped_stdin() -> str:
    """Password piped on stdin, or "" when stdin is a terminal."""
    if sys.stdin is None or sys.stdin.isatty():
        return ""
    return sys.stdin.read().strip()


def prompt_password(prompt: str = "Password: ", confirm: bool = False) -> str:
    pw = getpass.getpass(prompt)
    if confirm and pw and getpass.getpass("Confirm: ") != pw:
        raise ValidationError("passwords don't match")
    return pw


def resolve_password(flag_value: Optional[str], confirm: bool = False) -> str:
    """Password from the flag, else piped stdin, else an interactive prompt."""
    if flag_value:
        return flag_value
    piped = read_piped_stdin()
    if piped:
        return piped
    if sys.stdin is not None and sys.stdin.isatty():
        return prompt_password(confirm=confirm)
    return ""


def print_assessment(assessment: Assessment) -> None:
    print(f"Strength: {assessment.strength.value.upper()}")
    if not assessment.findings:
        print("No policy violations found.")
    else:
        print("Findings:")
        for finding in assessment.findings:
            print(f" - [{finding.severity.value.upper()}] {finding.message}")
    if assessment.breached:
        print("WARNING: This password appears in known data breaches.")
    else:
        print("No matches in known data breaches.")


def copy_to_clipboard(text: str) -> None:
    try:
        import pyperclip
    except ImportError:
        print("(pyperclip not installed - run: pip install pyperclip)")
        return
    pyperclip.copy(text)
    print("✓ Copied to clipboard!")


def print_entries(entries, show: bool = False) -> None:
    if not entries:
        print("No saved passwords.")
        return
    header = f"{'Label':<24}  {'Created (UTC)':<20}  {'Updated (UTC)':<20}"
    if show:
        header += "  Password"
    print(header)
    print("-" * len(header))
    for e in entries:
        line = (
            f"{e.label:<24}  {e.created_at:%Y-%m-%d %H:%M:%S}  "
            f"{e.updated_at:%Y-%m-%d %H:%M:%S}"
        )
        if show:
            line += f"  {e.password}"
        print(line)


def entries_to_json(entries, show: bool = False) -> str:
    payload = []
    for e in entries:
        data = e.to_dict()
        if not show:
            data["password"] = MASK
        payload.append(data)
    return json.dumps(payload, indent=2)


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_check(args, config: Config) -> int:
    pw = resolve_password(args.password)
    if not pw:
        raise ValidationError("no password provided; use --password or pipe a password to stdin")

    service = build_service(config, offline=args.offline, with_store=False)
    assessment = service.evaluate_password(pw, timeout=check_timeout(config))

    if args.json:
        print(json.dumps(assessment.to_dict(), indent=2))
    else:
        print_assessment(assessment)
    return 0


def cmd_generate(args, config: Config) -> int:
    bits = args.bits if args.bits is not None else config.generator.default_bits
    service = build_service(config, offline=True, with_store=bool(args.save))
    pw = service.generate_password(bits)
    print(pw)

    if args.save:
        record = service.save_password(args.save, pw)
        print(f"✓ Saved as '{record.label}'")
    if args.copy:
        copy_to_clipboard(pw)
    return 0


def cmd_save(args, config: Config) -> int:
    service = build_service(config, offline=True)

    if args.generate:
        bits = args.bits if args.bits is not None else config.generator.default_bits
        pw = service.generate_password(bits)
        print(f"Generated: {pw}")
    else:
        pw = resolve_password(args.password, confirm=True)
    if not pw:
        raise ValidationError("no password provided; use --password, --generate or pipe one to stdin")

    record = service.save_password(args.label, pw)
    action = "Created" if record.created_at == record.updated_at else "Updated"
    print(f"✓ {action} '{record.label}'")
    return 0


def cmd_list(args, config: Config) -> int:
    service = build_service(config, offline=True)
    entries = service.list_saved_passwords()
    if args.json:
        print(entries_to_json(entries, show=args.show))
    else:
        print_entries(entries, show=args.show)
    return 0


# =============================================================================
# INTERACTIVE MENU
# =============================================================================

def print_menu(config: Config) -> None:
    print("pwcheck - Interactive Menu")
    print("=" * 40)
    print(f"Store: {config.storage.path}")
    print("\n 1) Check a password")
    print(" 2) Generate a password")
    print(" 3) Save a password")
    print(" 4) List saved passwords")
    print(" 0) Exit")


def _menu_check(service: PasswordService, config: Config) -> None:
    pw = getpass.getpass("\nPassword to check: ")
    if not pw:
        print("Cancelled.")
        return
    print_assessment(service.evaluate_password(pw, timeout=check_timeout(config)))


def _menu_generate(service: PasswordService, config: Config) -> bool:
    """Returns False when the bit strength input was invalid."""
    default = config.generator.default_bits
    raw = input(f"\nBit strength [{default}]: ").strip()
    bits = default
    if raw:
        try:
            bits = int(raw)
        except ValueError:
            print(f"Invalid input: {raw!r} is not a number.")
            return False
        if bits <= 0:
            print("Invalid input: value must be positive.")
            return False

    pw = service.generate_password(bits)
    print(f"\nGenerated: {pw}")
    label = input("Save under label (blank to skip): ").strip()
    if label:
        record = service.save_password(label, pw)
        print(f"✓ Saved as '{record.label}'")
    return True


def _menu_save(service: PasswordService) -> None:
    label = input("\nLabel: ").strip()
    if not label:
        print("Label required.")
        return
    pw = getpass.getpass("Password: ")
    if not pw:
        print("Cancelled.")
        return
    record = service.save_password(label, pw)
    print(f"\n✓ Saved '{record.label}'")


def _menu_list(service: PasswordService) -> None:
    print()
    print_entries(service.list_saved_passwords())


def cmd_interactive(args, config: Config) -> int:
    service = build_service(config)
    max_retries = config.cli.max_prompt_retries
    invalid = 0

    while True:
        print()
        print_menu(config)
        try:
            choice = input("\n> ").strip()
        except EOFError:
            print("\nGoodbye!")
            return 0

        valid = True
        try:
            if choice == "1":
                _menu_check(service, config)
            elif choice == "2":
                valid = _menu_generate(service, config)
            elif choice == "3":
                _menu_save(service)
            elif choice == "4":
                _menu_list(service)
            elif choice == "0":
                print("\nGoodbye!")
                return 0
            else:
                print("Invalid choice. Please try again.")
                valid = False
        except EOFError:
            print("\nGoodbye!")
            return 0
        except PwcheckError as e:
            print(f"ERROR: {e}")

        if valid:
            invalid = 0
            continue
        invalid += 1
        if invalid >= max_retries:
            raise ValidationError(f"maximum number of invalid inputs exceeded ({max_retries})")


# =============================================================================
# ENTRY POINT
# =============================================================================

def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{raw!r} is not an integer") from None
    if value <= 0:
        raise argparse.ArgumentTypeError("must be greater than zero")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pwcheck",
        description="Password strength checker, generator and breach lookup.",
    )
    parser.add_argument("-V", "--version", action="version", version=f"pwcheck {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", metavar="<command>")

    p = sub.add_parser("check", help="Evaluate a password for strength and breaches")
    p.add_argument("--password", help="Password to evaluate (default: stdin or prompt)")
    p.add_argument("--json", action="store_true", help="Render the output as JSON")
    p.add_argument("--offline", action="store_true", help="Only use offline breach datasets")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("generate", help="Generate a secure password")
    p.add_argument("--bits", type=_positive_int, help="Bit strength (default from config)")
    p.add_argument("--save", metavar="LABEL", help="Also store the password under LABEL")
    p.add_argument("--copy", action="store_true", help="Copy to clipboard (needs pyperclip)")
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser("save", help="Store a password under a label")
    p.add_argument("label", help="Label (case-insensitive, unique)")
    p.add_argument("--password", help="Password to store (default: stdin or prompt)")
    p.add_argument("--generate", action="store_true", help="Generate the password")
    p.add_argument("--bits", type=_positive_int, help="Bit strength when generating")
    p.set_defaults(func=cmd_save)

    p = sub.add_parser("list", help="List stored passwords")
    p.add_argument("--show", action="store_true", help="Show passwords instead of masking")
    p.add_argument("--json", action="store_true", help="Render the output as JSON")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("interactive", help="Launch the interactive menu")
    p.set_defaults(func=cmd_interactive)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    setup_logging("DEBUG" if args.verbose else config.log_level)

    try:
        return args.func(args, config)
    except PwcheckError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nExiting...", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
