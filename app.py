# app.py
import pygame, logging
from typing import Optional, Tuple
from config import AppConfig
from session import Session
from render.renderer import Renderer, STATUS_H
from audio.synth import Synth
from input.keymap import describe_keymap, resolve_command, is_union_click
from storage.state_file import load_state, save_state
from utils.crashlog import log_exception
from utils.path import default_state_path

BPM_STEP = 5.0

class App:
    def __init__(self, cfg: AppConfig):
        self.cfg = cfg
        self.renderer = Renderer(cfg.render, cfg.grid)
        self.synth = Synth(cfg.audio)
        self.session = Session(cfg, self.synth)
        self.state_path = cfg.state_path or default_state_path()

        self.hover: Optional[Tuple[int, int]] = None
        self._dirty_state = False

        rec = load_state(self.state_path)
        self.session.from_record(rec)
        logging.info("載入 %d 個音符、%d 個 preset", len(rec.notes), len(rec.presets))
        logging.info("快捷鍵：%s", describe_keymap())

        # 有變動就標記，迴圈裡存檔
        self.session.notes.subscribe(self._mark_dirty)
        self.session.presets.subscribe(self._mark_dirty)

        notes = self.session.notes.notes
        self.renderer.center_on(notes[0].midi if notes else 60)

    def _mark_dirty(self):
        self._dirty_state = True

    def _save(self):
        if save_state(self.state_path, self.session.to_record()):
            self._dirty_state = False

    # ---------- pointer ----------
    def _set_hover(self, cell: Optional[Tuple[int, int]]):
        if cell == self.hover:
            return
        if self.hover is not None:
            self.session.hover_leave(*self.hover)
        self.hover = cell
        if cell is not None:
            self.session.hover_enter(*cell)

    def _on_button(self, label: str) -> bool:
        s = self.session
        if label == "PLAY/PAUSE":
            s.command("toggle_play")
        elif label == "STOP":
            s.stop()
        elif label == "+ PRESET":
            s.add_preset()
        elif label == "PRESET":
            s.presets.cycle_active()
        elif label == "CLEAR":
            s.clear_all()
        elif label == "BPM-":
            s.set_bpm(s.bpm - BPM_STEP)
            self._dirty_state = True
        elif label == "BPM+":
            s.set_bpm(s.bpm + BPM_STEP)
            self._dirty_state = True
        elif label == "HOVER":
            s.toggle_hover_preview()
        elif label == "QUIT":
            return False
        return True

    def _status_text(self) -> str:
        s = self.session
        p = s.presets.active
        fields = [
            f"{s.transport.state.upper()}",
            f"BPM: {s.bpm:.0f}",
            f"PRESET: {p.name} ({p.instrument}, {p.duration})",
            f"NOTES: {len(s.notes)}",
            f"SEL: {len(s.selection)}",
            f"STEPS: {s.steps}",
        ]
        if s.preview_on_hover:
            fields.append("HOVER PREVIEW")
        if not self.synth.ready:
            fields.append("NO MIDI OUT")
        return "  |  ".join(fields)

    # ---------- Main loop ----------
    def run(self):
        running = True
        try:
            while running:
                self.renderer.tick(self.cfg.render.fps)
                for e in pygame.event.get():
                    if e.type == pygame.QUIT:
                        running = False

                    elif e.type == pygame.KEYDOWN:
                        cmd = resolve_command(e.key, e.mod)
                        if cmd:
                            self.session.command(cmd)

                    elif e.type == pygame.MOUSEMOTION:
                        self._set_hover(self.renderer.cell_at(e.pos))

                    elif e.type == pygame.MOUSEWHEEL:
                        # shift + 滾輪 = 左右捲動
                        if pygame.key.get_mods() & pygame.KMOD_SHIFT:
                            self.renderer.scroll(-e.y * 4, 0, self.session.steps)
                        else:
                            self.renderer.scroll(-e.x * 4, -e.y * 3, self.session.steps)
                        self.session.viewport(self.renderer.last_visible_step())

                    elif e.type == pygame.MOUSEBUTTONDOWN and e.button in (1, 3):
                        mx, my = e.pos
                        if my <= STATUS_H:
                            if e.button == 1:
                                for label, rect in self.renderer.button_rects.items():
                                    if rect.collidepoint(mx, my):
                                        running = self._on_button(label)
                            continue
                        cell = self.renderer.cell_at(e.pos)
                        if cell is None or cell[1] >= self.session.steps:
                            continue
                        if e.button == 1:
                            self.session.cell_click(*cell, union=is_union_click(pygame.key.get_mods()))
                        else:
                            self.session.secondary_click(*cell)

                if not running:
                    break

                try:
                    self.session.pump()
                except Exception as ex:
                    logging.exception("播放處理失敗")
                    log_exception("pump", ex)
                    self.session.stop()

                if self._dirty_state:
                    self._save()

                # ----- Render -----
                r = self.renderer
                r.begin_frame()
                r.draw_grid(self.session.steps)
                r.draw_notes(self.session.notes, self.session.presets, self.session.selection.ids)
                r.draw_hover(self.hover)
                r.draw_cursor(self.session.cursor)
                r.draw_status_bar(right_info_text=self._status_text())
                r.end_frame()
        finally:
            self._save()
            self.session.close()
            self.synth.close()
            pygame.quit()
