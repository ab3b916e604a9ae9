"""Interactive operator prompts."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeAlias

from talos_hcloud._cluster_errors import ConfirmationDeclined

Reader: TypeAlias = Callable[[str], str]


def confirm(question: str, reader: Reader = input) -> None:
    """Ask a yes/no *question*; anything but ``y`` or ``Y`` raises.

    Raises
    ------
    ConfirmationDeclined
        When the answer is not affirmative or input is closed.

    Examples
    --------
    >>> confirm("Continue?", reader=lambda _: "y")
    >>> confirm("Continue?", reader=lambda _: "yes")
    Traceback (most recent call last):
    ...
    talos_hcloud._cluster_errors.ConfirmationDeclined: Aborted.
    """

    try:
        answer = reader(f"{question} (y/N) ")
    except EOFError:
        answer = ""
    if answer.strip() not in {"y", "Y"}:
        raise ConfirmationDeclined("Aborted.")


def pause(message: str, reader: Reader = input) -> None:
    """Block until the operator presses Enter; Ctrl+D aborts."""

    try:
        reader(f"{message} ")
    except EOFError as exc:
        raise ConfirmationDeclined("Aborted.") from exc


__all__ = ["Reader", "confirm", "pause"]
