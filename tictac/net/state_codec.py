from __future__ import annotations

from typing import Dict, List, Optional

from ..errors import FormatError
from ..game import BOARD_CELLS, Cell, GameState, Player

# Binary layout, 11 bytes:
#   0-8   one byte per cell: b"X", b"O" or b" " for empty
#   9     round (0-255)
#   10    flags, see the bit constants below
STATE_SIZE = BOARD_CELLS + 2

FLAG_CURRENT_B = 0x01
FLAG_ACTIVE = 0x02
FLAG_HAS_WINNER = 0x04
FLAG_WINNER_B = 0x08
_KNOWN_FLAGS = FLAG_CURRENT_B | FLAG_ACTIVE | FLAG_HAS_WINNER | FLAG_WINNER_B

EMPTY_MARK = " "
_CELL_BYTES: Dict[int, Cell] = {
    ord(Player.A.mark): Player.A,
    ord(Player.B.mark): Player.B,
    ord(EMPTY_MARK): None,
}

TEXT_SEPARATOR = "|"
CELL_SEPARATOR = ","
NO_WINNER = EMPTY_MARK


def _cell_mark(cell: Cell) -> str:
    return cell.mark if cell is not None else EMPTY_MARK


def encode(state: GameState) -> bytes:
    if len(state.board) != BOARD_CELLS:
        raise FormatError(f"board must have {BOARD_CELLS} cells, got {len(state.board)}")
    if not 0 <= state.round <= 0xFF:
        raise FormatError(f"round {state.round} does not fit in one byte")
    flags = 0
    if state.current_player is Player.B:
        flags |= FLAG_CURRENT_B
    if state.active:
        flags |= FLAG_ACTIVE
    if state.winner is not None:
        flags |= FLAG_HAS_WINNER
        if state.winner is Player.B:
            flags |= FLAG_WINNER_B
    board = "".join(_cell_mark(cell) for cell in state.board).encode("ascii")
    return board + bytes([state.round, flags])


def decode(data: bytes) -> GameState:
    if len(data) != STATE_SIZE:
        raise FormatError(f"state must be {STATE_SIZE} bytes, got {len(data)}")
    board: List[Cell] = []
    for i, byte in enumerate(data[:BOARD_CELLS]):
        if byte not in _CELL_BYTES:
            raise FormatError(f"invalid mark {byte!r} in cell {i}")
        board.append(_CELL_BYTES[byte])
    flags = data[10]
    if flags & ~_KNOWN_FLAGS:
        raise FormatError(f"unknown flag bits set: {flags:#04x}")
    # Winner identity without the presence bit could not be re-encoded
    if flags & FLAG_WINNER_B and not flags & FLAG_HAS_WINNER:
        raise FormatError("winner identity set without a winner")
    winner: Optional[Player] = None
    if flags & FLAG_HAS_WINNER:
        winner = Player.B if flags & FLAG_WINNER_B else Player.A
    return GameState(
        board=board,
        round=data[9],
        active=bool(flags & FLAG_ACTIVE),
        current_player=Player.B if flags & FLAG_CURRENT_B else Player.A,
        winner=winner,
    )


# --------------------------- Text form ---------------------------

def _parse_player(token: str, field_name: str) -> Player:
    try:
        return Player(token)
    except ValueError:
        raise FormatError(f"invalid {field_name}: {token!r}") from None


def encode_text(state: GameState) -> str:
    board = CELL_SEPARATOR.join(_cell_mark(cell) for cell in state.board)
    winner = state.winner.mark if state.winner is not None else NO_WINNER
    fields = [board, state.current_player.mark, str(state.round), "1" if state.active else "0", winner]
    return TEXT_SEPARATOR.join(fields)


def decode_text(text: str) -> GameState:
    fields = text.split(TEXT_SEPARATOR)
    if len(fields) != 5:
        raise FormatError(f"expected 5 fields, got {len(fields)}")
    board_text, current, round_text, active_text, winner_text = fields

    tokens = board_text.split(CELL_SEPARATOR)
    if len(tokens) != BOARD_CELLS:
        raise FormatError(f"expected {BOARD_CELLS} cells, got {len(tokens)}")
    board: List[Cell] = []
    for token in tokens:
        board.append(None if token == EMPTY_MARK else _parse_player(token, "cell"))

    if not (round_text.isascii() and round_text.isdigit()) or int(round_text) > 0xFF:
        raise FormatError(f"invalid round: {round_text!r}")
    if active_text not in ("0", "1"):
        raise FormatError(f"invalid active flag: {active_text!r}")
    # The sentinel means "no winner"; it must never fall back to a player
    winner = None if winner_text == NO_WINNER else _parse_player(winner_text, "winner")

    return GameState(
        board=board,
        round=int(round_text),
        active=active_text == "1",
        current_player=_parse_player(current, "current player"),
        winner=winner,
    )
