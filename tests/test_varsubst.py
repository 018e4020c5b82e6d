import pytest

from svcproxy.varsubst import expand_vars


@pytest.mark.parametrize(
    "variables,value,expected",
    [
        ({"X": "foo", "Y": "bar"}, "${X}/${Y}", "foo/bar"),
        ({"NAME": "X", "Y": "bar"}, "${NAME}/${Y}", "X/bar"),
        ({"X": "foo", "Y": "bar"}, "${NAME}/${Y}", "${NAME}/bar"),
        ({"NAME": "a"}, "${NAME}/bar", "a/bar"),
        ({"X": "foo", "Y": "bar"}, "a/${X}/cd/${Y}", "a/foo/cd/bar"),
        ({"X": "${Y}", "Y": "bar"}, "${X}", "${Y}"),
        ({"1X": "nope"}, "${1X} $X", "${1X} $X"),
    ],
)
def test_expand_vars(variables, value, expected):
    assert expand_vars(variables, value) == expected
