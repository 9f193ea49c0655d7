#!/usr/bin/env python3
"""
Croco Cartridge - Command Line Interface

Entry point for the croco-cartridge package.
"""

import argparse
import logging
import os
import subprocess
import sys
from contextlib import contextmanager

from croco import __version__
from croco.conf import Settings, save_device_ids, save_timeout_ms
from croco.constants import UDEV_RULES_PATH
from croco.core.errors import CrocoError


def _int_auto(value):
    """argparse type accepting decimal or 0x-prefixed hex."""
    return int(value, 0)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="croco",
        description="Croco Cartridge flash cart tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    croco list                        List ROMs on the cartridge
    croco info                        Show firmware/hardware info
    croco upload-rom zelda.gb         Upload a ROM
    croco download-save 1 zelda.sav   Back up the save of ROM 1
    croco upload-save 1 zelda.sav     Restore the save of ROM 1
    croco delete 2                    Delete ROM 2
    croco menu                        Interactive menu
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)"
    )
    parser.add_argument("--vid", type=_int_auto, help="USB vendor id (default from config)")
    parser.add_argument("--pid", type=_int_auto, help="USB product id (default from config)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("detect", help="List attached cartridges")
    subparsers.add_parser("list", help="List ROMs on the cartridge")
    subparsers.add_parser("info", help="Show device information")

    upload_parser = subparsers.add_parser("upload-rom", help="Upload a ROM image")
    upload_parser.add_argument("file", help="ROM file")
    upload_parser.add_argument("--name", "-n", help="Name shown on the cartridge (max 17 chars)")

    dl_save_parser = subparsers.add_parser("download-save", help="Download a ROM's save")
    dl_save_parser.add_argument("rom", type=int, help="ROM number from 'croco list'")
    dl_save_parser.add_argument("file", help="Destination save file")

    ul_save_parser = subparsers.add_parser("upload-save", help="Upload a save for a ROM")
    ul_save_parser.add_argument("rom", type=int, help="ROM number from 'croco list'")
    ul_save_parser.add_argument("file", help="Save file to upload")

    delete_parser = subparsers.add_parser("delete", help="Delete a ROM")
    delete_parser.add_argument("rom", type=int, help="ROM number from 'croco list'")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    subparsers.add_parser("menu", help="Interactive text menu")

    config_parser = subparsers.add_parser("config", help="Show or change saved settings")
    config_parser.add_argument("--set-vid", type=_int_auto, help="Save USB vendor id")
    config_parser.add_argument("--set-pid", type=_int_auto, help="Save USB product id")
    config_parser.add_argument("--set-timeout", type=int, help="Save USB timeout (ms)")

    udev_parser = subparsers.add_parser("setup-udev", help="Install udev rule for non-root access")
    udev_parser.add_argument("--dry-run", action="store_true", help="Print rule without installing")

    subparsers.add_parser("doctor", help="Check dependencies and permissions")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(args.verbose)

    settings = Settings()
    settings.override(vid=args.vid, pid=args.pid)

    if args.command == "detect":
        return detect(settings)
    elif args.command == "list":
        return list_roms(settings)
    elif args.command == "info":
        return show_info(settings)
    elif args.command == "upload-rom":
        return upload_rom(args.file, name=args.name, settings=settings)
    elif args.command == "download-save":
        return download_save(args.rom, args.file, settings=settings)
    elif args.command == "upload-save":
        return upload_save(args.rom, args.file, settings=settings)
    elif args.command == "delete":
        return delete_rom(args.rom, yes=args.yes, settings=settings)
    elif args.command == "menu":
        return menu(settings)
    elif args.command == "config":
        return configure(settings, vid=args.set_vid, pid=args.set_pid,
                         timeout_ms=args.set_timeout)
    elif args.command == "setup-udev":
        return setup_udev(settings, dry_run=args.dry_run)
    elif args.command == "doctor":
        from croco.doctor import run_doctor
        return run_doctor(settings)

    return 0


def _setup_logging(verbose=0):
    if verbose >= 2:
        logging.basicConfig(level=logging.DEBUG, format='[%(levelname)s] %(name)s: %(message)s')
        logging.getLogger('usb').setLevel(logging.WARNING)
    elif verbose == 1:
        logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING, format='[%(levelname)s] %(message)s')


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

def _print_progress(banks_done, total_banks):
    print(f"\r  bank {banks_done}/{total_banks}", end="" if banks_done < total_banks else "\n",
          flush=True)


@contextmanager
def _cartridge(settings, progress=False):
    """Open the cartridge and yield a CartridgeService; always closes."""
    from croco.services.cartridge import CartridgeService
    from croco.usb_device import open_session

    session = open_session(settings.vid, settings.pid, settings.timeout_ms)
    try:
        yield CartridgeService(session, on_progress=_print_progress if progress else None)
    finally:
        session.close()


def _rom_id(number):
    """Convert a 1-based ROM number (as printed by 'list') to the device id."""
    if number < 1 or number > 256:
        raise ValueError(f"Invalid ROM number {number}. Use the number shown by 'croco list'")
    return number - 1


def _format_transfer(result):
    return (f"{result.bytes_moved} bytes in {result.banks_done} bank(s), "
            f"{result.elapsed_s:.1f}s ({result.rate_kib_s:.1f} KiB/s)")


# ---------------------------------------------------------------------------
# Output formatting (shared by commands and menu)
# ---------------------------------------------------------------------------

def _print_catalog(catalog):
    util = catalog.utilization
    print(f"Found {util.rom_count} game(s) using {util.used_banks} / {util.max_banks} banks\n")
    if util.rom_count == 0:
        print("No ROMs found on cartridge")
        return
    for entry in catalog.entries:
        print(f"[{entry.rom_id + 1:2d}] {entry.name:<22s} | ROM: {entry.rom_banks:5d} banks"
              f" | RAM: {entry.ram_banks} x 8KB | MBC: 0x{entry.mbc:02x}")
    for rom_id in catalog.skipped:
        print(f"[{rom_id + 1:2d}] <failed to read ROM info>")


def _print_identity(identity):
    info = identity.info
    print("Device Information:")
    print(f"  Feature Step: {info.feature_step}")
    print(f"  HW Version: {info.hw_version}")
    print(f"  SW Version: {info.sw_version_str}")
    print(f"  Git Short: {info.git_short_str}")
    print(f"  Git Dirty: {'yes' if info.git_dirty else 'no'}")
    if identity.serial_str is not None:
        print(f"  Serial ID: {identity.serial_str}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def detect(settings=None):
    """List attached cartridges."""
    settings = settings or Settings()
    try:
        from croco.usb_device import find_devices

        devices = find_devices(settings.vid, settings.pid)
        if not devices:
            print(f"No Croco Cartridge detected ({settings.vid:04x}:{settings.pid:04x}).")
            return 1
        for i, dev in enumerate(devices, 1):
            print(f"[{i}] Croco Cartridge {dev}")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def list_roms(settings=None):
    """List ROMs installed on the cartridge."""
    settings = settings or Settings()
    try:
        with _cartridge(settings) as cart:
            print("Fetching ROM information...\n")
            _print_catalog(cart.list_roms())
        return 0
    except (CrocoError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1


def show_info(settings=None):
    """Show firmware/hardware identity."""
    settings = settings or Settings()
    try:
        with _cartridge(settings) as cart:
            _print_identity(cart.identity())
        return 0
    except (CrocoError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1


def upload_rom(path, name=None, settings=None):
    """Upload a ROM image."""
    settings = settings or Settings()
    try:
        if not os.path.isfile(path):
            print(f"Error: File not found: {path}")
            return 1
        with _cartridge(settings, progress=True) as cart:
            print(f"Uploading {path}...")
            result = cart.upload_rom(path, name=name)
        print(f"Upload complete: {_format_transfer(result)}")
        return 0
    except (CrocoError, ValueError, OSError) as e:
        print(f"\nError: {e}")
        return 1


def download_save(rom_number, path, settings=None):
    """Download a ROM's save RAM to a file."""
    settings = settings or Settings()
    try:
        rom_id = _rom_id(rom_number)
        with _cartridge(settings, progress=True) as cart:
            print(f"Downloading save of ROM {rom_number} to {path}...")
            result = cart.download_save(rom_id, path)
        print(f"Download complete: {_format_transfer(result)}")
        return 0
    except (CrocoError, ValueError, OSError) as e:
        print(f"\nError: {e}")
        return 1


def upload_save(rom_number, path, settings=None):
    """Upload a save file into a ROM's save RAM."""
    settings = settings or Settings()
    try:
        rom_id = _rom_id(rom_number)
        if not os.path.isfile(path):
            print(f"Error: File not found: {path}")
            return 1
        with _cartridge(settings, progress=True) as cart:
            print(f"Uploading save {path} to ROM {rom_number}...")
            result = cart.upload_save(rom_id, path)
        print(f"Upload complete: {_format_transfer(result)}")
        return 0
    except (CrocoError, ValueError, OSError) as e:
        print(f"\nError: {e}")
        return 1


def delete_rom(rom_number, yes=False, settings=None):
    """Delete a ROM from the cartridge."""
    settings = settings or Settings()
    try:
        rom_id = _rom_id(rom_number)
        with _cartridge(settings) as cart:
            entry = cart.rom_info(rom_id)
            if not yes:
                answer = input(f"Delete ROM {rom_number} ({entry.name})? [y/N] ")
                if answer.strip().lower() not in ("y", "yes"):
                    print("Cancelled.")
                    return 0
            cart.delete_rom(rom_id)
        print(f"Deleted ROM {rom_number} ({entry.name})")
        return 0
    except (CrocoError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1


# ---------------------------------------------------------------------------
# Interactive menu
# ---------------------------------------------------------------------------

_MENU = """
Croco Cartridge
  1) List ROMs
  2) Device info
  3) Upload ROM
  4) Download save
  5) Upload save
  6) Delete ROM
  q) Quit
"""


def _ask(prompt):
    return input(prompt).strip()


def _ask_rom(prompt="ROM number: "):
    return _rom_id(int(_ask(prompt)))


def _menu_action(cart, choice):
    """Run one menu entry against an open cartridge."""
    if choice == "1":
        _print_catalog(cart.list_roms())
    elif choice == "2":
        _print_identity(cart.identity())
    elif choice == "3":
        path = _ask("ROM file: ")
        name = _ask("Name (empty = file name): ") or None
        result = cart.upload_rom(path, name=name)
        print(f"Upload complete: {_format_transfer(result)}")
    elif choice == "4":
        rom_id = _ask_rom()
        path = _ask("Save file: ")
        result = cart.download_save(rom_id, path)
        print(f"Download complete: {_format_transfer(result)}")
    elif choice == "5":
        rom_id = _ask_rom()
        path = _ask("Save file: ")
        result = cart.upload_save(rom_id, path)
        print(f"Upload complete: {_format_transfer(result)}")
    elif choice == "6":
        rom_id = _ask_rom()
        entry = cart.rom_info(rom_id)
        if _ask(f"Delete {entry.name}? [y/N] ").lower() in ("y", "yes"):
            cart.delete_rom(rom_id)
            print(f"Deleted {entry.name}")
    else:
        print(f"Unknown option: {choice}")


def menu(settings=None):
    """Interactive menu over one cartridge session."""
    settings = settings or Settings()
    try:
        with _cartridge(settings, progress=True) as cart:
            while True:
                print(_MENU)
                try:
                    choice = _ask("> ").lower()
                except EOFError:
                    break
                if choice in ("q", "quit", "exit"):
                    break
                try:
                    _menu_action(cart, choice)
                except (CrocoError, ValueError, OSError) as e:
                    print(f"\nError: {e}")
        return 0
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 1
    except CrocoError as e:
        print(f"Error: {e}")
        return 1


# ---------------------------------------------------------------------------
# Configuration / system setup
# ---------------------------------------------------------------------------

def configure(settings, vid=None, pid=None, timeout_ms=None):
    """Show saved settings, or persist new ones."""
    try:
        if vid is not None or pid is not None:
            save_device_ids(vid if vid is not None else settings.vid,
                            pid if pid is not None else settings.pid)
        if timeout_ms is not None:
            save_timeout_ms(timeout_ms)
        for key, value in Settings().as_dict().items():
            print(f"{key}: {value}")
        return 0
    except (ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1


def _udev_rule(vid, pid):
    return (
        "# Croco Cartridge - auto-generated by croco setup-udev\n"
        f'SUBSYSTEM=="usb", ATTRS{{idVendor}}=="{vid:04x}", '
        f'ATTRS{{idProduct}}=="{pid:04x}", MODE="0666", TAG+="uaccess"\n'
    )


def setup_udev(settings=None, dry_run=False):
    """Install a udev rule so the cartridge can be opened without root."""
    settings = settings or Settings()
    try:
        content = _udev_rule(settings.vid, settings.pid)

        if dry_run:
            print(content)
            print(f"# Would write to {UDEV_RULES_PATH}")
            return 0

        if os.geteuid() != 0:
            print("Error: root required. Run with:")
            print("  sudo croco setup-udev")
            print("\nOr preview first:")
            print("  croco setup-udev --dry-run")
            return 1

        with open(UDEV_RULES_PATH, "w") as f:
            f.write(content)
        print(f"Wrote {UDEV_RULES_PATH}")

        subprocess.run(["udevadm", "control", "--reload-rules"], check=False)
        subprocess.run(["udevadm", "trigger"], check=False)
        print("\nDone. Replug the cartridge for changes to take effect.")
        return 0
    except OSError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
