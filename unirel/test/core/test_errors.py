"""Tests for unirel.core.errors module."""

from unirel.core.errors import ErrorCode


class TestErrorCodeValues:
    """Exit codes are part of the CLI contract."""

    def test_values(self) -> None:
        assert ErrorCode.OK == 0
        assert ErrorCode.USER_ERROR == 1
        assert ErrorCode.ENV_ERROR == 2
        assert ErrorCode.CONFIG_ERROR == 3
        assert ErrorCode.NETWORK_ERROR == 4
        assert ErrorCode.IO_ERROR == 5
        assert ErrorCode.CONFLICT == 6

    def test_codes_are_unique(self) -> None:
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))


class TestErrorCodeUsage:
    def test_can_use_as_int(self) -> None:
        code: int = ErrorCode.CONFLICT
        assert code == 6

    def test_str(self) -> None:
        assert str(ErrorCode.NETWORK_ERROR) == "network error"

    def test_is_success(self) -> None:
        assert ErrorCode.OK.is_success
        assert not ErrorCode.USER_ERROR.is_success
