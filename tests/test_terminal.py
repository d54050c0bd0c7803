import io

import pytest

from tictac.session import Match
from tictac.terminal import KeyDecoder, draw, render, step_cursor


def feed_all(decoder: KeyDecoder, data: bytes):
    return [decoder.feed(data[i:i + 1]) for i in range(len(data))]


def test_arrow_sequences_are_assembled() -> None:
    decoder = KeyDecoder()
    assert feed_all(decoder, b"\x1b[A") == [None, None, "up"]
    assert feed_all(decoder, b"\x1b[D") == [None, None, "left"]


def test_plain_keys() -> None:
    decoder = KeyDecoder()
    assert feed_all(decoder, b"wasd XOrq\n") == [
        "up", "left", "down", "right", "place", "x", "o", "restart", "quit", "place",
    ]


def test_broken_escape_is_dropped() -> None:
    decoder = KeyDecoder()
    assert feed_all(decoder, b"\x1bq") == [None, None]
    assert decoder.feed(b"q") == "quit"


@pytest.mark.parametrize(
    ("cursor", "action", "expected"),
    [(4, "up", 1), (4, "down", 7), (4, "left", 3), (4, "right", 5), (0, "up", 0), (0, "left", 0), (8, "down", 8), (8, "right", 8)],
)
def test_step_cursor_stays_on_board(cursor: int, action: str, expected: int) -> None:
    assert step_cursor(cursor, action) == expected


def test_render_shows_marks_and_status() -> None:
    match = Match()
    match.place(0)
    lines = render(match, cursor=4)
    assert "X" in lines[2]
    assert any("O to move" in line for line in lines)
    assert any("r restart" in line for line in lines)

    out = io.StringIO()
    draw(out, lines)
    assert out.getvalue().startswith("\033[1;1H")
