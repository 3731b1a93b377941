"""Common utilities for pdum_provision commands."""

import shutil
import stat
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from InquirerPy import inquirer

from pdum.provision.gcloud import run_gcloud
from pdum.provision.types import BillingAccount
from pdum.provision.types.exceptions import GCloudError


def is_interactive() -> bool:
    return sys.stdin.isatty()


def confirm(message: str, default: bool = False) -> bool:
    """Ask a yes/no question.

    Args:
        message: The question to show
        default: Answer used on empty input, and when stdin is not a terminal

    Returns:
        True for yes
    """
    if not is_interactive():
        return default
    return inquirer.confirm(message=message, default=default).execute()


def choose_billing_account(accounts: list[BillingAccount]) -> BillingAccount:
    """Interactively choose a billing account.

    Args:
        accounts: Candidate accounts (usually the open ones)

    Returns:
        The selected billing account

    Raises:
        GCloudError: If no accounts are available
    """
    if not accounts:
        raise GCloudError("No billing accounts found. You need at least one open billing account.")

    # If only one account, or nobody to ask, take the first
    if len(accounts) == 1 or not is_interactive():
        return accounts[0]

    choices = []
    for account in accounts:
        open_status = "OPEN" if account.is_open else "CLOSED"
        choices.append({
            "name": f"{account.display_name} ({account.id}) [{open_status}]",
            "value": account.id,
        })

    selected = inquirer.select(
        message="Select billing account:",
        choices=choices,
    ).execute()

    return next(a for a in accounts if a.id == selected)


def check_environment() -> str:
    """Verify that gcloud is installed and has an active account.

    Returns:
        The active account email

    Raises:
        GCloudError: If gcloud is missing or not initialised
    """
    if shutil.which("gcloud") is None:
        raise GCloudError("Missing dependency: gcloud. Install the Google Cloud SDK first.")

    account = run_gcloud(["config", "get-value", "account"], check=False)
    if not account or account == "(unset)":
        raise GCloudError("No active gcloud account. Please run 'gcloud init' first.")
    return account


@dataclass
class KeyFile:
    path: Path
    mode: int
    size: int
    modified: datetime

    @property
    def is_private(self) -> bool:
        return not self.mode & (stat.S_IRWXG | stat.S_IRWXO)


def list_key_files(key_dir: Path, patterns: tuple[str, ...] = ("*.json", "*.txt")) -> list[KeyFile]:
    """List credential files directly inside ``key_dir``, newest first."""
    if not key_dir.is_dir():
        return []

    found: dict[Path, KeyFile] = {}
    for pattern in patterns:
        for path in key_dir.glob(pattern):
            if not path.is_file():
                continue
            info = path.stat()
            found[path] = KeyFile(
                path=path,
                mode=stat.S_IMODE(info.st_mode),
                size=info.st_size,
                modified=datetime.fromtimestamp(info.st_mtime),
            )
    return sorted(found.values(), key=lambda k: k.modified, reverse=True)


def format_mode(mode: Optional[int]) -> str:
    return "-" if mode is None else f"{mode:04o}"
