from __future__ import annotations

from enum import Enum
from typing import List, Optional

from .game import GameState, Player


class RejectReason(Enum):
    GAME_OVER = "game_over"
    NOT_SINGLE_MOVE = "not_single_move"
    ROUND_MISMATCH = "round_mismatch"
    WRONG_MOVER = "wrong_mover"
    CELL_OCCUPIED = "cell_occupied"
    TURN_NOT_ADVANCED = "turn_not_advanced"


def changed_cells(local: GameState, proposed: GameState) -> List[int]:
    return [i for i, (old, new) in enumerate(zip(local.board, proposed.board)) if old != new]


def validate(local: GameState, proposed: GameState, expected_mover: Player) -> Optional[RejectReason]:
    """Decide whether ``proposed`` is one legal move on top of ``local``.

    Returns None when the proposed state may replace the local one, otherwise
    the first reason it may not. Neither state is modified.
    """
    if not local.active:
        return RejectReason.GAME_OVER
    diff = changed_cells(local, proposed)
    if len(diff) != 1 or len(proposed.board) != len(local.board):
        return RejectReason.NOT_SINGLE_MOVE
    if proposed.round != local.round + 1:
        return RejectReason.ROUND_MISMATCH
    (index,) = diff
    if proposed.board[index] is not expected_mover:
        return RejectReason.WRONG_MOVER
    if local.board[index] is not None:
        return RejectReason.CELL_OCCUPIED
    if proposed.current_player is local.current_player:
        return RejectReason.TURN_NOT_ADVANCED
    return None
