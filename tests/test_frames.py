import pytest

from spread_monitor.exchange.frames import FrameError, parse_book_frame, parse_fair_frame


def test_mark_price_array_frame():
    frame = [
        {"e": "markPriceUpdate", "E": 1, "s": "BTCUSDT", "p": "60000.1", "i": "60010.0", "r": "0.0001"},
        {"e": "markPriceUpdate", "E": 1, "s": "ETHUSDT", "p": "3000.5"},
        {"e": "markPriceUpdate", "E": 1, "p": "1.0"},
        "garbage",
    ]
    out = parse_fair_frame(frame)
    assert [u.symbol for u in out] == ["BTCUSDT", "ETHUSDT"]
    assert out[0].fair_price == "60000.1"
    assert out[0].secondary_fair_price == "60010.0"
    assert out[1].secondary_fair_price is None


def test_mark_price_combined_stream_envelope():
    out = parse_fair_frame({"stream": "!markPrice@arr@1s", "data": [{"s": "X", "p": "1"}]})
    assert out[0].symbol == "X"


def test_mark_price_non_array_is_a_frame_error():
    with pytest.raises(FrameError):
        parse_fair_frame({"result": None, "id": 1})


def test_book_ticker_single_object():
    out = parse_book_frame({"e": "bookTicker", "s": "BTCUSDT", "b": "59999.9", "B": "1", "a": "60000.0", "A": "2"})
    assert len(out) == 1
    assert (out[0].bid, out[0].ask) == ("59999.9", "60000.0")


def test_book_ticker_array_and_missing_event_type():
    out = parse_book_frame([
        {"s": "A", "b": "1", "a": "2"},
        {"e": "bookTicker", "s": "B", "b": "3", "a": "4"},
        {"e": "depthUpdate", "s": "C", "b": "5", "a": "6"},
        {"e": "bookTicker", "b": "7", "a": "8"},
    ])
    assert [u.symbol for u in out] == ["A", "B"]


def test_book_ticker_wrong_event_type_is_ignored():
    assert parse_book_frame({"e": "trade", "s": "A", "b": "1", "a": "2"}) == []


def test_book_ticker_scalar_is_a_frame_error():
    with pytest.raises(FrameError):
        parse_book_frame(42)
