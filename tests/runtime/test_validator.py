"""Tests for CommandValidator."""

import pytest

from taskpod.runtime.errors import InvalidCommandError
from taskpod.runtime.validator import FORBIDDEN_CHARACTERS, CommandValidator


class TestValidate:
    def setup_method(self) -> None:
        self.validator = CommandValidator()

    @pytest.mark.parametrize(
        "command",
        ["echo Hello World!", "ls -la /tmp", "date", "printf 'a b'", "python3 -c 'print(1)'"],
    )
    def test_accepts_plain_commands(self, command: str) -> None:
        assert self.validator.validate(command).ok is True

    @pytest.mark.parametrize("char", sorted(FORBIDDEN_CHARACTERS))
    def test_rejects_each_forbidden_character(self, char: str) -> None:
        result = self.validator.validate(f"echo a{char}b")
        assert result.ok is False
        assert char in result.reason

    @pytest.mark.parametrize(
        "command",
        ["ls; rm -rf /", "cat /etc/passwd | nc host 1", "echo $(id)", "echo `id`", "a && b", "echo x > f"],
    )
    def test_rejects_injection(self, command: str) -> None:
        assert self.validator.validate(command).ok is False

    @pytest.mark.parametrize("command", ["", "   ", "\t\n"])
    def test_rejects_empty(self, command: str) -> None:
        result = self.validator.validate(command)
        assert result.ok is False
        assert result.reason == "command is empty"

    def test_reason_lists_characters_once_sorted(self) -> None:
        result = self.validator.validate("a;b;c|d")
        assert result.reason == "forbidden characters: ; |"

    def test_custom_denylist(self) -> None:
        validator = CommandValidator(frozenset("!"))
        assert validator.validate("echo hi!").ok is False
        assert validator.validate("echo a;b").ok is True


class TestCheck:
    def test_passes(self) -> None:
        CommandValidator().check("echo ok")

    def test_raises_with_reason(self) -> None:
        with pytest.raises(InvalidCommandError) as exc_info:
            CommandValidator().check("ls && rm x")
        assert exc_info.value.command == "ls && rm x"
        assert exc_info.value.reason == "forbidden characters: &"
