import os

import pytest

from sckit.sigformat import FormatError, format_safe, signal_log


def test_zero_size_gives_empty():
    assert format_safe("%s", "test", size=0) == ""


def test_string():
    assert format_safe("%s", "test", size=128) == "test"


def test_null_string():
    assert format_safe("%s", None, size=128) == "(null)"


def test_negative_int():
    assert format_safe("%d", -3, size=128) == "-3"


def test_unsigned():
    assert format_safe("%u", 3, size=128) == "3"


def test_long():
    assert format_safe("%ld", -1000000000, size=128) == "-1000000000"


def test_long_long():
    assert format_safe("%lld", -100000000000, size=128) == "-100000000000"


def test_unsigned_long():
    assert format_safe("%lu", 1000000000, size=128) == "1000000000"


def test_unsigned_long_long():
    assert format_safe("%llu", 100000000000, size=128) == "100000000000"


def test_pointer():
    assert format_safe("%p", 0xABCDEF, size=128) == "0xabcdef"


def test_percent_escape():
    assert format_safe("%%p", 0xABCDEF, size=128) == "%p"


@pytest.mark.parametrize("fmt", ["%c", "%llx", "%lx", "%ls", "%lll", "abc%"])
def test_unsupported_conversion(fmt):
    with pytest.raises(FormatError):
        format_safe(fmt, 3, size=128)


def test_mixed_literal_and_conversions():
    assert format_safe("Recv : %s, (%d) \n", "SIGINT", 2) == "Recv : SIGINT, (2) \n"


def test_truncation_keeps_room_for_terminator():
    assert format_safe("%s", "test", size=3) == "te"


def test_unsigned_wraps_to_32_bits():
    assert format_safe("%u", -1) == "4294967295"


def test_signed_wraps_to_32_bits():
    assert format_safe("%d", 2**31) == "-2147483648"


def test_missing_argument():
    with pytest.raises(FormatError):
        format_safe("%d and %d", 1)


def test_non_integer_argument():
    with pytest.raises(FormatError):
        format_safe("%d", "x")


def test_signal_log_writes_to_fd():
    r, w = os.pipe()
    try:
        written = signal_log(w, "%s-%d", "test", 7)
        assert written == 6
        assert os.read(r, 100) == b"test-7"
    finally:
        os.close(r)
        os.close(w)


def test_signal_log_ignores_write_failure():
    r, w = os.pipe()
    try:
        assert signal_log(r, "%s", "test") == 0
    finally:
        os.close(r)
        os.close(w)