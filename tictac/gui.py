from __future__ import annotations

from typing import Optional, Tuple

import pygame

from .game import BOARD_SIZE, Player
from .session import Match

# --------------------------- Pygame rendering ---------------------------

WINDOW_BG = (15, 18, 25)
GRID_BG = (23, 28, 38)
GRID_LINE = (50, 58, 72)
TEXT = (230, 235, 245)
SUBTEXT = (155, 165, 185)
HOVER = (90, 160, 245)
MARK_A = (58, 123, 213)
MARK_B = (240, 190, 90)
VICTORY = (90, 200, 120)
DEFEAT = (220, 60, 80)

CELL_SIZE = 120
PANEL_PADDING = 28
TOP_BAR = 84
BOTTOM_BAR = 60


class GuiGame:
    def __init__(self, match: Match) -> None:
        pygame.init()
        pygame.display.set_caption("tictac")
        width = CELL_SIZE * BOARD_SIZE + PANEL_PADDING * 2
        height = TOP_BAR + CELL_SIZE * BOARD_SIZE + BOTTOM_BAR
        self.screen = pygame.display.set_mode((width, height))
        self.clock = pygame.time.Clock()
        self.font = pygame.font.SysFont("Arial", 22)
        self.font_big = pygame.font.SysFont("Arial", 40, bold=True)
        self.match = match
        self.running = True

    def board_rect(self) -> pygame.Rect:
        return pygame.Rect(PANEL_PADDING, TOP_BAR, CELL_SIZE * BOARD_SIZE, CELL_SIZE * BOARD_SIZE)

    def mouse_to_cell(self, pos: Tuple[int, int]) -> Optional[int]:
        rect = self.board_rect()
        if not rect.collidepoint(pos):
            return None
        col = (pos[0] - rect.x) // CELL_SIZE
        row = (pos[1] - rect.y) // CELL_SIZE
        if 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE:
            return int(row * BOARD_SIZE + col)
        return None

    # --------------------------- Draw ---------------------------
    def draw(self) -> None:
        self.screen.fill(WINDOW_BG)
        rect = self.board_rect()
        pygame.draw.rect(self.screen, GRID_BG, rect, border_radius=8)
        for i in range(1, BOARD_SIZE):
            x = rect.x + i * CELL_SIZE
            y = rect.y + i * CELL_SIZE
            pygame.draw.line(self.screen, GRID_LINE, (rect.x, y), (rect.right, y), 3)
            pygame.draw.line(self.screen, GRID_LINE, (x, rect.y), (x, rect.bottom), 3)

        for index, cell in enumerate(self.match.state.board):
            if cell is not None:
                self.draw_mark(index, cell)

        # hover hint on a free cell when it is our move
        if self.match.is_my_turn():
            index = self.mouse_to_cell(pygame.mouse.get_pos())
            if index is not None and self.match.state.board[index] is None:
                cx, cy = self.cell_origin(index)
                pygame.draw.rect(self.screen, HOVER, (cx + 4, cy + 4, CELL_SIZE - 8, CELL_SIZE - 8), 2)

        self.draw_banner()
        status = self.font.render(self.match.status_text(), True, SUBTEXT)
        self.screen.blit(status, (PANEL_PADDING, self.screen.get_height() - BOTTOM_BAR + 16))
        pygame.display.flip()

    def cell_origin(self, index: int) -> Tuple[int, int]:
        rect = self.board_rect()
        row, col = divmod(index, BOARD_SIZE)
        return rect.x + col * CELL_SIZE, rect.y + row * CELL_SIZE

    def draw_mark(self, index: int, player: Player) -> None:
        cx, cy = self.cell_origin(index)
        inset = CELL_SIZE // 4
        if player is Player.A:
            pygame.draw.line(self.screen, MARK_A, (cx + inset, cy + inset), (cx + CELL_SIZE - inset, cy + CELL_SIZE - inset), 8)
            pygame.draw.line(self.screen, MARK_A, (cx + CELL_SIZE - inset, cy + inset), (cx + inset, cy + CELL_SIZE - inset), 8)
        else:
            pygame.draw.circle(self.screen, MARK_B, (cx + CELL_SIZE // 2, cy + CELL_SIZE // 2), CELL_SIZE // 2 - inset, 8)

    def draw_banner(self) -> None:
        state = self.match.state
        if state.active:
            title = self.font_big.render("tictac", True, TEXT)
        else:
            lost = self.match.networked and state.winner is not None and state.winner is not self.match.local_player
            color = TEXT if state.winner is None else (DEFEAT if lost else VICTORY)
            title = self.font_big.render(self.match.status_text(), True, color)
        self.screen.blit(title, (self.screen.get_width() // 2 - title.get_width() // 2, 20))

    # --------------------------- Loop ---------------------------
    def run(self) -> None:
        try:
            while self.running:
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self.running = False
                    elif event.type == pygame.KEYDOWN:
                        if event.key == pygame.K_ESCAPE:
                            self.running = False
                        elif event.key == pygame.K_r:
                            self.match.restart()
                    elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                        index = self.mouse_to_cell(event.pos)
                        if index is not None:
                            self.match.place(index)

                self.match.poll_network(0.0)
                self.match.tick()
                self.draw()
                self.clock.tick(30)
        finally:
            pygame.quit()


def run_gui(match: Match) -> None:
    GuiGame(match).run()
