"""Command-line interface for U-Boot flash tools."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from . import (
    DEFAULT_SERIAL_PORT,
    DEVICE_PROMPT,
    FLASH_BASE_ADDRESS,
    SERIAL_BAUD_RATE,
    SYSTEM_PARTITION,
    VERIFY_POLL_TIMEOUT_S,
    VERIFY_RETRIES,
)
from .commit import CommitConfig, CommitOrchestrator
from .exceptions import UBootFlashToolsError
from .image import load_image
from .session import FlashMode, FlashSession, SessionConfig
from .transport import ConsoleTransport, DryRunTransport, SerialTransport
from .verifier import VerifyMode


def _parse_int(text: str) -> int:
    """Accept decimal or ``0x``-prefixed hex on the command line."""
    try:
        return int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: {text!r}")


def confirm(question: str) -> bool:
    """Ask a y/n question on stdin until answered.  EOF counts as "no"."""
    while True:
        try:
            answer = input(f"\n{question} (y/n)? ").strip().lower()
        except EOFError:
            return False
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False


def command_flash(args) -> int:
    """Load an image into RAM with read-back verification, then optionally commit it."""
    mode = FlashMode.DRY_RUN if args.dry_run else FlashMode.LIVE
    ctx = f"CLI flash {args.image} via {'dry-run' if args.dry_run else args.serial_port}"

    try:
        image = load_image(args.image)
        session_config = SessionConfig(
            base_address=args.base_address,
            poll_timeout_s=args.poll_timeout,
            retries=args.retries,
            mode=mode,
            verify_mode=VerifyMode.ADDRESS_ONLY if args.address_only else VerifyMode.FULL,
            prompt=args.prompt,
            echo_commands=args.echo,
            show_progress=not args.no_progress,
        )
        commit_config = CommitConfig(
            partition=args.partition,
            reboot=bool(args.reboot),
            mode=mode,
        )

        on_command = (lambda command: print(command)) if args.dry_run else None

        transport: ConsoleTransport
        if args.dry_run:
            transport = DryRunTransport()
        else:
            transport = SerialTransport(port=args.serial_port, baud_rate=args.baud_rate)

        with transport:
            session = FlashSession(transport, session_config, on_command=on_command)
            result = session.run(image, context=ctx)
            print(
                f"Done: {result.bytes_written} bytes written, "
                f"{result.chunks_verified}/{result.chunks_written} chunks verified "
                f"({result.elapsed_seconds:.1f}s)"
            )

            do_commit = args.commit
            if do_commit is None:
                do_commit = confirm(f"Write {args.partition} partition to NAND")
            if not do_commit:
                return 0

            orchestrator = CommitOrchestrator(transport, commit_config, on_command=on_command)
            commit_result = orchestrator.commit(
                base_address=session_config.base_address,
                size=len(image),
                context=ctx,
                confirm_reboot=(lambda: confirm("Reboot")) if args.reboot is None else None,
            )
            print(f"Committed to {args.partition}" + (", rebooting" if commit_result.rebooted else ""))
            return 0

    except UBootFlashToolsError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def command_serial_list(args) -> int:
    """List available serial ports."""
    ports = SerialTransport.list_available_ports()
    if not ports:
        print("No serial ports found.")
    else:
        print("Available serial ports:")
        for p in ports:
            print(f"  {p}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="U-Boot Flash Tools - load and verify an image through the bootloader console"
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase log output (-v: info, -vv: debug)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Flash
    flash_parser = subparsers.add_parser(
        "flash", help="Write an image to RAM with read-back verification",
    )
    flash_parser.add_argument("image", help="Flat binary image (multiple of 2048 bytes)")
    flash_parser.add_argument(
        "--serial-port", type=str, default=DEFAULT_SERIAL_PORT,
        help=f"Serial port path (default: {DEFAULT_SERIAL_PORT}, "
             f"or UBOOT_FLASH_SERIAL_PORT)",
    )
    flash_parser.add_argument(
        "--baud-rate", type=int, default=SERIAL_BAUD_RATE,
        help=f"Baud rate (default: {SERIAL_BAUD_RATE})",
    )
    flash_parser.add_argument(
        "--base-address", type=_parse_int, default=FLASH_BASE_ADDRESS,
        help=f"RAM load address (default: 0x{FLASH_BASE_ADDRESS:X})",
    )
    flash_parser.add_argument(
        "--partition", type=str, default=SYSTEM_PARTITION,
        help=f"NAND partition to commit to (default: {SYSTEM_PARTITION})",
    )
    flash_parser.add_argument(
        "--prompt", type=str, default=DEVICE_PROMPT,
        help=f"Device prompt to ignore in output (default: {DEVICE_PROMPT})",
    )
    flash_parser.add_argument(
        "--poll-timeout", type=float, default=VERIFY_POLL_TIMEOUT_S,
        help=f"Seconds per read-back poll (default: {VERIFY_POLL_TIMEOUT_S})",
    )
    flash_parser.add_argument(
        "--retries", type=int, default=VERIFY_RETRIES,
        help=f"Silent polls tolerated per chunk (default: {VERIFY_RETRIES})",
    )
    flash_parser.add_argument(
        "--dry-run", action="store_true", default=False,
        help="Print the console commands instead of sending them",
    )
    flash_parser.add_argument(
        "--address-only", action="store_true", default=False,
        help="Verify only the address of each read-back record",
    )
    flash_parser.add_argument(
        "--echo", action="store_true", default=False,
        help="Log every console command as it is sent",
    )
    flash_parser.add_argument(
        "--no-progress", action="store_true", default=False,
        help="Hide the progress bar",
    )
    flash_parser.add_argument(
        "--commit", dest="commit", action="store_const", const=True, default=None,
        help="Write the verified image to NAND without asking",
    )
    flash_parser.add_argument(
        "--no-commit", dest="commit", action="store_const", const=False,
        help="Stop after loading into RAM without asking",
    )
    flash_parser.add_argument(
        "--reboot", dest="reboot", action="store_const", const=True, default=None,
        help="Reboot after committing without asking",
    )
    flash_parser.add_argument(
        "--no-reboot", dest="reboot", action="store_const", const=False,
        help="Do not reboot after committing",
    )
    flash_parser.set_defaults(func=command_flash)

    # Serial list
    serial_list_parser = subparsers.add_parser(
        "serial-list", help="List available serial ports",
    )
    serial_list_parser.set_defaults(func=command_serial_list)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
