import pytest

from dataferry.utils.sql import format_column_list, quote_identifier, quote_schema_table


@pytest.mark.parametrize(
    "identifier,expected",
    [
        ("trips", '"trips"'),
        ("Order Date", '"Order Date"'),
        ('say "hi"', '"say ""hi"""'),
        ("select", '"select"'),
    ],
)
def test_quote_identifier(identifier, expected):
    assert quote_identifier(identifier) == expected


@pytest.mark.parametrize("identifier", ["", "bad\x00name"])
def test_quote_identifier_rejects_invalid(identifier):
    with pytest.raises(ValueError):
        quote_identifier(identifier)


def test_quote_schema_table():
    assert quote_schema_table("trips", "main") == '"main"."trips"'
    assert quote_schema_table("trips") == '"trips"'


def test_format_column_list():
    assert format_column_list(["a", "b c"]) == '"a", "b c"'
    assert format_column_list([]) == "*"
