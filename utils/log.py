"""
Console output for the filing import command.

Colour-coded banner, step and result lines plus the closing summary, and a
verbose logger that mirrors the importer's own log records to logs/reader.log.
"""

import datetime
import logging
import os
import sys

from colorama import Fore, Style, init

init(autoreset=True)


class C:
    BANNER = Fore.CYAN + Style.BRIGHT
    STEP = Fore.BLUE + Style.BRIGHT
    IMPORTED = Fore.GREEN + Style.BRIGHT
    SKIPPED = Fore.YELLOW + Style.BRIGHT
    FAILED = Fore.RED + Style.BRIGHT
    VALUE = Fore.GREEN
    RESET = Style.RESET_ALL


def _ts() -> str:
    return datetime.datetime.now().strftime("%H:%M:%S")


def header(msg: str) -> None:
    print(f"\n{C.BANNER}{'='*60}")
    print(f"  {msg}")
    print(f"{'='*60}{C.RESET}\n")


def step(msg: str) -> None:
    print(f"{C.STEP}[{_ts()}] >> {msg}{C.RESET}")


def ok(msg: str) -> None:
    """A filing was fetched and stored."""
    print(f"{C.IMPORTED}[{_ts()}] OK {msg}{C.RESET}")


def warn(msg: str) -> None:
    """The filing was already in the database."""
    print(f"{C.SKIPPED}[{_ts()}] SKIP {msg}{C.RESET}")


def err(msg: str) -> None:
    print(f"{C.FAILED}[{_ts()}] ERR {msg}{C.RESET}")


def summary_table(title: str, rows: list[tuple[str, str]]) -> None:
    """Label/value rows, labels padded to the longest one."""
    print(f"\n{C.BANNER}{title}{C.RESET}")
    width = max((len(label) for label, _ in rows), default=0)
    for label, value in rows:
        print(f"  {label:<{width}}  {C.VALUE}{value}{C.RESET}")
    print()


def setup_verbose_logging(name: str = "reader", level: int = logging.DEBUG) -> logging.Logger:
    """
    Attach console (INFO) and logs/reader.log (DEBUG) handlers to the named
    logger. Calling it again returns the logger unchanged.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    fmt = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(fmt)
    logger.addHandler(console)

    log_dir = os.path.join(os.path.dirname(os.path.dirname(__file__)), "logs")
    os.makedirs(log_dir, exist_ok=True)
    logfile = logging.FileHandler(os.path.join(log_dir, "reader.log"))
    logfile.setLevel(logging.DEBUG)
    logfile.setFormatter(fmt)
    logger.addHandler(logfile)

    return logger
