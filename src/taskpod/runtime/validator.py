"""CommandValidator — rejects shell metacharacters before a command is stored or run.

Pure logic, no I/O.  This is a denylist, not a sandbox: it only stops
metacharacter injection (command chaining, piping, redirection, variable
and command substitution) through this execution path.  A command that is
free of these characters can still do anything the sandbox image allows.
"""

from __future__ import annotations

from pydantic import BaseModel

from taskpod.runtime.errors import InvalidCommandError

FORBIDDEN_CHARACTERS: frozenset[str] = frozenset(";&|`<>$")


class ValidationResult(BaseModel):
    """Outcome of validating a single command."""

    ok: bool
    reason: str = ""


class CommandValidator:
    """Validate commands against the metacharacter denylist."""

    def __init__(self, forbidden: frozenset[str] = FORBIDDEN_CHARACTERS) -> None:
        self._forbidden = forbidden

    def validate(self, command: str) -> ValidationResult:
        """Return ``ok=True`` if *command* is safe to run, else the reason it is not."""
        if not command or not command.strip():
            return ValidationResult(ok=False, reason="command is empty")

        found = sorted({ch for ch in command if ch in self._forbidden})
        if found:
            return ValidationResult(
                ok=False,
                reason="forbidden characters: " + " ".join(found),
            )
        return ValidationResult(ok=True)

    def check(self, command: str) -> None:
        """Raise :class:`InvalidCommandError` unless *command* validates."""
        result = self.validate(command)
        if not result.ok:
            raise InvalidCommandError(command, result.reason)
