import pytest

from ansiblesec.utils.permissions import excess_bits, format_mode, parse_mode


@pytest.mark.parametrize(
    "value, expected",
    [
        ("0644", 0o644),
        ("644", 0o644),
        ("0o755", 0o755),
        ("1777", 0o1777),
        ("u=rw,g=r,o=r", 0o644),
        ("u=rwx,go=rx", 0o755),
        ("a+x", 0o111),
        ("u+rw,u-w", 0o400),
    ],
)
def test_parse_mode(value, expected):
    assert parse_mode(value) == expected


@pytest.mark.parametrize("value", ["preserve", "{{ mode }}", "", None, True, "rwxr-xr-x", "0999"])
def test_parse_mode_returns_none_for_non_literal_modes(value):
    assert parse_mode(value) is None


def test_excess_bits_and_formatting():
    assert excess_bits(0o777, 0o644) == 0o133
    assert excess_bits(0o600, 0o644) == 0
    assert format_mode(0o644) == "0644"
    assert format_mode(0o4755) == "4755"
