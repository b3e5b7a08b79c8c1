"""Tests for exit codes module."""

from animebell.cli.exit_codes import ExitCode


class TestExitCode:
    """Test ExitCode constants."""

    def test_standard_codes(self) -> None:
        assert ExitCode.SUCCESS == 0
        assert ExitCode.GENERAL_ERROR == 1
        assert ExitCode.CANCELLED == 130

    def test_codes_are_unique(self) -> None:
        codes = [value for name, value in vars(ExitCode).items() if name.isupper()]
        assert len(codes) == len(set(codes))

    def test_get_name(self) -> None:
        assert ExitCode.get_name(0) == "SUCCESS"
        assert ExitCode.get_name(3) == "DAEMON_ERROR"
        assert ExitCode.get_name(10) == "RATE_LIMITED"

    def test_get_name_unknown(self) -> None:
        assert ExitCode.get_name(99) == "UNKNOWN(99)"
