# render/renderer.py
import pygame, logging
from typing import Iterable, Optional, Set, Tuple
from config import GridConfig, RenderConfig
from notes.model import Note, midi_to_note_name
from notes.presets import PresetStore

STATUS_H = 36
BTN_PAD_X = 12
BTN_GAP = 10
WHITE_SET = {0, 2, 4, 5, 7, 9, 11}
BUTTONS = ["PLAY/PAUSE", "STOP", "+ PRESET", "PRESET", "CLEAR", "BPM-", "BPM+", "HOVER", "QUIT"]

class Renderer:
    """Piano-roll grid: pitch rows (high at the top) × step columns."""
    def __init__(self, cfg: RenderConfig, grid: GridConfig):
        pygame.init()
        self.cfg = cfg
        self.grid = grid
        self.screen = pygame.display.set_mode((cfg.window_w, cfg.window_h))
        pygame.display.set_caption("stepgrid")
        self.font = pygame.font.SysFont("consolas", 16)
        self.font_small = pygame.font.SysFont("consolas", 12)
        self.clock = pygame.time.Clock()
        self.button_rects = {}

        self.step_offset = 0   # 最左邊顯示的 step
        self.row_offset = 0    # 最上面顯示的列（0 = max_midi）
        self.rows = grid.max_midi - grid.min_midi + 1

    # ---------- 幾何 ----------
    @property
    def grid_rect(self) -> pygame.Rect:
        return pygame.Rect(self.cfg.keys_w, STATUS_H + 1,
                           self.cfg.window_w - self.cfg.keys_w,
                           self.cfg.window_h - STATUS_H - 1)

    def visible_steps(self) -> int:
        return max(1, self.grid_rect.width // self.cfg.cell_w)

    def visible_rows(self) -> int:
        return max(1, self.grid_rect.height // self.cfg.cell_h)

    def last_visible_step(self) -> int:
        return self.step_offset + self.visible_steps() - 1

    def center_on(self, midi: int):
        row = self.grid.max_midi - midi
        self.row_offset = max(0, min(self.rows - self.visible_rows(), row - self.visible_rows() // 2))

    def scroll(self, d_steps: int, d_rows: int, total_steps: int):
        max_step = max(0, total_steps - self.visible_steps())
        self.step_offset = max(0, min(max_step, self.step_offset + d_steps))
        self.row_offset = max(0, min(max(0, self.rows - self.visible_rows()), self.row_offset + d_rows))

    def cell_at(self, pos: Tuple[int, int]) -> Optional[Tuple[int, int]]:
        r = self.grid_rect
        if not r.collidepoint(pos):
            return None
        col = (pos[0] - r.x) // self.cfg.cell_w + self.step_offset
        row = (pos[1] - r.y) // self.cfg.cell_h + self.row_offset
        midi = self.grid.max_midi - row
        if midi < self.grid.min_midi:
            return None
        return midi, col

    def _cell_xy(self, midi: int, step: int) -> Tuple[int, int]:
        r = self.grid_rect
        x = r.x + (step - self.step_offset) * self.cfg.cell_w
        y = r.y + (self.grid.max_midi - midi - self.row_offset) * self.cfg.cell_h
        return x, y

    # ---------- frame ----------
    def tick(self, fps=60) -> float:
        return self.clock.tick(fps) / 1000.0

    def begin_frame(self):
        self.screen.fill((12, 12, 14))

    def end_frame(self):
        pygame.display.flip()

    def draw_status_bar(self, right_info_text: str = ""):
        pygame.draw.rect(self.screen, (24, 24, 28), (0, 0, self.cfg.window_w, STATUS_H))
        pygame.draw.line(self.screen, (60, 60, 66), (0, STATUS_H), (self.cfg.window_w, STATUS_H), 1)

        x = 10; self.button_rects.clear()
        for label in BUTTONS:
            surf = self.font_small.render(label, True, (220, 220, 230))
            rect = surf.get_rect(); rect.topleft = (x + BTN_PAD_X, (STATUS_H - rect.height)//2)
            box = pygame.Rect(x, 4, rect.width + BTN_PAD_X*2, STATUS_H - 8)
            pygame.draw.rect(self.screen, (40, 40, 46), box, border_radius=6)
            pygame.draw.rect(self.screen, (75, 75, 85), box, 1, border_radius=6)
            self.screen.blit(surf, rect)
            self.button_rects[label] = box
            x += box.width + BTN_GAP

        if right_info_text:
            right = self.font_small.render(right_info_text, True, (180, 180, 190))
            self.screen.blit(right, (self.cfg.window_w - right.get_width() - 10, (STATUS_H - right.get_height())//2))

    def draw_grid(self, total_steps: int):
        r = self.grid_rect
        cw, ch = self.cfg.cell_w, self.cfg.cell_h
        first_row, n_rows = self.row_offset, self.visible_rows()
        for i in range(n_rows + 1):
            midi = self.grid.max_midi - (first_row + i)
            if midi < self.grid.min_midi:
                break
            y = r.y + i * ch
            shade = (22, 22, 26) if (midi % 12) in WHITE_SET else (16, 16, 19)
            pygame.draw.rect(self.screen, shade, (r.x, y, r.width, ch))
            # 左邊音名
            key_fill = (220, 220, 224) if (midi % 12) in WHITE_SET else (40, 40, 46)
            pygame.draw.rect(self.screen, key_fill, (0, y, self.cfg.keys_w - 2, ch - 1))
            if midi % 12 == 0:
                label = self.font_small.render(midi_to_note_name(midi), True, (30, 30, 34))
                self.screen.blit(label, (4, y + (ch - label.get_height()) // 2))

        last = min(total_steps, self.step_offset + self.visible_steps() + 1)
        for step in range(self.step_offset, last + 1):
            x = r.x + (step - self.step_offset) * cw
            color = (70, 70, 80) if step % 16 == 0 else (44, 44, 50) if step % 4 == 0 else (30, 30, 35)
            pygame.draw.line(self.screen, color, (x, r.y), (x, r.bottom), 1)
        # 超出 timeline 範圍的部分畫暗
        end_x = r.x + (total_steps - self.step_offset) * cw
        if end_x < r.right:
            pygame.draw.rect(self.screen, (8, 8, 9), (end_x, r.y, r.right - end_x, r.height))

    def draw_notes(self, notes: Iterable[Note], presets: PresetStore, selected: Set[str]):
        r = self.grid_rect
        cw, ch = self.cfg.cell_w, self.cfg.cell_h
        clip_prev = self.screen.get_clip()
        self.screen.set_clip(r)
        # 建立順序畫，後建立的蓋在上面
        for n in notes:
            x, y = self._cell_xy(n.midi, n.step)
            w = n.span * cw
            if x + w < r.x or x > r.right or y + ch < r.y or y > r.bottom:
                continue
            try:
                color = pygame.Color(presets.resolve(n.preset_id).color)
            except ValueError:
                logging.warning("preset 顏色無效，改用預設：%r", n.preset_id)
                color = pygame.Color(80, 200, 120)
            rect = pygame.Rect(x + 1, y + 1, w - 2, ch - 2)
            pygame.draw.rect(self.screen, color, rect, border_radius=3)
            if n.id in selected:
                pygame.draw.rect(self.screen, (255, 255, 255), rect, 2, border_radius=3)
        self.screen.set_clip(clip_prev)

    def draw_hover(self, cell: Optional[Tuple[int, int]]):
        if cell is None:
            return
        x, y = self._cell_xy(*cell)
        if self.grid_rect.collidepoint(x, y):
            pygame.draw.rect(self.screen, (120, 120, 140), (x, y, self.cfg.cell_w, self.cfg.cell_h), 1)

    def draw_cursor(self, step: Optional[int]):
        if step is None:
            return
        r = self.grid_rect
        x = r.x + (step - self.step_offset) * self.cfg.cell_w
        if r.x <= x <= r.right:
            pygame.draw.rect(self.screen, (255, 240, 170), (x, r.y, self.cfg.cell_w, r.height), 2)
