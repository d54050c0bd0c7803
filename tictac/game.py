from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

BOARD_SIZE = 3
BOARD_CELLS = BOARD_SIZE * BOARD_SIZE

# Scanned in this order: rows, then columns, then diagonals
WIN_LINES = [
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
]


class Player(Enum):
    A = "X"
    B = "O"

    @property
    def mark(self) -> str:
        return self.value

    def other(self) -> Player:
        return Player.B if self is Player.A else Player.A


Cell = Optional[Player]


def empty_board() -> List[Cell]:
    return [None] * BOARD_CELLS


@dataclass
class GameState:
    board: List[Cell] = field(default_factory=empty_board)
    round: int = 0
    active: bool = True
    current_player: Player = Player.A
    winner: Optional[Player] = None

    def copy(self) -> GameState:
        return GameState(
            board=list(self.board),
            round=self.round,
            active=self.active,
            current_player=self.current_player,
            winner=self.winner,
        )

    def is_full(self) -> bool:
        return all(cell is not None for cell in self.board)


def find_winner(board: List[Cell]) -> Optional[Player]:
    for a, b, c in WIN_LINES:
        if board[a] is not None and board[a] == board[b] == board[c]:
            return board[a]
    return None


class Game:
    def __init__(self, state: Optional[GameState] = None) -> None:
        self.state = state if state is not None else GameState()

    def attempt_placing(self, index: int, player: Player) -> bool:
        # Illegal moves are ignored; the caller only learns nothing changed
        state = self.state
        if not state.active or player is not state.current_player:
            return False
        if not 0 <= index < BOARD_CELLS or state.board[index] is not None:
            return False
        state.board[index] = player
        state.round += 1
        state.current_player = player.other()
        self.check_finished()
        return True

    def adopt(self, state: GameState) -> None:
        """Install a reconciled remote state as the local one.

        Only called while the local game is still active, so the peer's
        winner/active flags are recomputed from the board rather than trusted.
        """
        adopted = state.copy()
        adopted.active = True
        adopted.winner = None
        self.state = adopted
        self.check_finished()

    def check_finished(self) -> None:
        state = self.state
        if state.winner is not None:
            state.active = False
            return
        winner = find_winner(state.board)
        if winner is not None:
            state.winner = winner
            state.active = False
        elif state.is_full():
            state.active = False

    def restart(self) -> None:
        self.state = GameState()

    def is_draw(self) -> bool:
        return not self.state.active and self.state.winner is None
