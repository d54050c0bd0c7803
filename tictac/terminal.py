from __future__ import annotations

import os
import queue
import signal
import sys
import termios
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, TextIO

from . import config
from .game import BOARD_CELLS, BOARD_SIZE, Player
from .session import Match

RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
REVERSE = "\033[7m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
CYAN = "\033[36m"

HIDE_CURSOR = "\033[?25l"
SHOW_CURSOR = "\033[?25h"
CLEAR_SCREEN = "\033[2J"
CLEAR_LINE = "\033[K"


def move_cursor(x: int, y: int) -> str:
    return f"\033[{y};{x}H"


# --------------------------- Scoped terminal resources ---------------------------

@contextmanager
def raw_mode(fd: int) -> Iterator[None]:
    """Turn off line buffering and echo; the saved settings always come back."""
    if not os.isatty(fd):
        yield
        return
    saved = termios.tcgetattr(fd)
    attrs = termios.tcgetattr(fd)
    attrs[3] &= ~(termios.ICANON | termios.ECHO)
    termios.tcsetattr(fd, termios.TCSANOW, attrs)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSANOW, saved)


@contextmanager
def termination_flag() -> Iterator[threading.Event]:
    """SIGINT/SIGTERM only set the returned flag; the main loop does the cleanup."""
    flag = threading.Event()

    def handler(signum, frame) -> None:
        flag.set()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield flag
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def start_key_reader(fd: int, keys: "queue.Queue[bytes]") -> threading.Thread:
    def loop() -> None:
        while True:
            try:
                data = os.read(fd, 1)
            except OSError:
                break
            if not data:
                break
            keys.put(data)

    thread = threading.Thread(target=loop, daemon=True)
    thread.start()
    return thread


# --------------------------- Keys ---------------------------

_ARROWS = {b"A": "up", b"B": "down", b"C": "right", b"D": "left"}
_KEYS = {
    b"w": "up", b"s": "down", b"d": "right", b"a": "left",
    b" ": "place", b"\n": "place", b"\r": "place",
    b"x": "x", b"o": "o", b"r": "restart", b"q": "quit",
}


class KeyDecoder:
    """Turns single key bytes into actions, assembling ESC [ A style arrows."""

    def __init__(self) -> None:
        self.pending = b""

    def feed(self, byte: bytes) -> Optional[str]:
        if self.pending == b"\x1b":
            self.pending = b"\x1b[" if byte == b"[" else b""
            return None
        if self.pending == b"\x1b[":
            self.pending = b""
            return _ARROWS.get(byte)
        if byte == b"\x1b":
            self.pending = byte
            return None
        return _KEYS.get(byte.lower())


def step_cursor(cursor: int, action: str) -> int:
    row, col = divmod(cursor, BOARD_SIZE)
    if action == "up":
        row = max(row - 1, 0)
    elif action == "down":
        row = min(row + 1, BOARD_SIZE - 1)
    elif action == "left":
        col = max(col - 1, 0)
    elif action == "right":
        col = min(col + 1, BOARD_SIZE - 1)
    return row * BOARD_SIZE + col


# --------------------------- Rendering ---------------------------

def _cell_text(match: Match, index: int, cursor: int) -> str:
    cell = match.state.board[index]
    if cell is None:
        text = DIM + "." + RESET
    elif cell is Player.A:
        text = CYAN + BOLD + cell.mark + RESET
    else:
        text = YELLOW + BOLD + cell.mark + RESET
    if index == cursor and match.state.active:
        text = REVERSE + " " + text + REVERSE + " " + RESET
    else:
        text = " " + text + " "
    return text


def render(match: Match, cursor: int) -> List[str]:
    lines = [BOLD + "tictac" + RESET, ""]
    for row in range(BOARD_SIZE):
        cells = [_cell_text(match, row * BOARD_SIZE + col, cursor) for col in range(BOARD_SIZE)]
        lines.append("|".join(cells))
        if row < BOARD_SIZE - 1:
            lines.append("---+---+---")
    lines.append("")
    status = match.status_text()
    color = GREEN if match.is_my_turn() else (RED if not match.state.active else YELLOW)
    lines.append(color + status + RESET)
    keys = "arrows/wasd move  space place  q quit"
    if not match.networked:
        keys += "  r restart"
    lines.append(DIM + keys + RESET)
    return lines


def draw(out: TextIO, lines: List[str]) -> None:
    out.write(move_cursor(1, 1) + "".join(line + CLEAR_LINE + "\r\n" for line in lines))
    out.flush()


# --------------------------- Loop ---------------------------

def run_terminal(match: Match, stdin_fd: Optional[int] = None, out: TextIO = sys.stdout) -> None:
    fd = sys.stdin.fileno() if stdin_fd is None else stdin_fd
    keys: "queue.Queue[bytes]" = queue.Queue()
    decoder = KeyDecoder()
    cursor = BOARD_CELLS // 2
    # Without a peer the key queue paces the loop instead of the network queue
    key_wait = 0.0 if match.networked else config.TICK_WAIT

    with termination_flag() as stop, raw_mode(fd):
        out.write(HIDE_CURSOR + CLEAR_SCREEN)
        try:
            start_key_reader(fd, keys)
            last: Optional[List[str]] = None
            while not stop.is_set():
                frame = render(match, cursor)
                if frame != last:
                    draw(out, frame)
                    last = frame

                try:
                    action = decoder.feed(keys.get(timeout=key_wait))
                except queue.Empty:
                    action = None
                if action == "quit":
                    break
                if action in ("up", "down", "left", "right"):
                    cursor = step_cursor(cursor, action)
                elif action == "place":
                    match.place(cursor)
                elif action in ("x", "o"):
                    match.place(cursor, Player(action.upper()))
                elif action == "restart":
                    match.restart()

                match.poll_network()
                match.tick()
        finally:
            out.write(CLEAR_SCREEN + SHOW_CURSOR + move_cursor(1, 1))
            out.flush()
