from decimal import Decimal

from receiptwright.receipt.money import format_money, money_equal, parse_money, round_money


def test_parse_money_reads_currency_symbol_and_thousands() -> None:
    assert parse_money("$1,234.56") == Decimal("1234.56")
    assert parse_money("  $ 3.50 ") == Decimal("3.50")
    assert parse_money("12") == Decimal("12.00")


def test_parse_money_negative_forms() -> None:
    assert parse_money("(12.34)") == Decimal("-12.34")
    assert parse_money("($12.34)") == Decimal("-12.34")
    assert parse_money("12.34-") == Decimal("-12.34")
    assert parse_money("-12.34") == Decimal("-12.34")
    assert parse_money("-$1.00") == Decimal("-1.00")
    assert parse_money("$-5.00") == Decimal("-5.00")


def test_parse_money_lone_comma_is_decimal_point() -> None:
    assert parse_money("12,50") == Decimal("12.50")
    assert parse_money("3,5") == Decimal("3.50")


def test_parse_money_rounds_half_away_from_zero() -> None:
    assert parse_money("2.345") == Decimal("2.35")
    assert parse_money("2.3449") == Decimal("2.34")
    assert parse_money("-2.345") == Decimal("-2.35")
    assert parse_money("(0.005)") == Decimal("-0.01")


def test_parse_money_rejects_tokens_without_numbers() -> None:
    assert parse_money("") is None
    assert parse_money("abc") is None
    assert parse_money("$") is None
    assert parse_money("12.34567") is None


def test_money_tokens_survive_format_round_trip() -> None:
    tokens = ["$1,234.56", "(12.34)", "12.34-", "-0.99", "7", "0.5", "12,50", "$ 1,000,000.00"]
    for token in tokens:
        amount = parse_money(token)
        assert amount is not None
        assert parse_money(format_money(amount)) == amount
        assert parse_money(format_money(amount, symbol="$")) == amount


def test_format_money_places_sign_before_symbol() -> None:
    assert format_money(Decimal("-12.3"), symbol="$") == "-$12.30"
    assert format_money(Decimal("1234.5"), symbol="$") == "$1,234.50"


def test_round_money_and_tolerance() -> None:
    assert round_money(Decimal("0.125")) == Decimal("0.13")
    assert round_money(Decimal("-0.125")) == Decimal("-0.13")
    assert money_equal(Decimal("10.00"), Decimal("10.02"))
    assert not money_equal(Decimal("10.00"), Decimal("10.03"))
