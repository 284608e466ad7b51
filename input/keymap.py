# ========================= input/keymap.py =========================
import pygame
from typing import Dict, Optional, Tuple

CTRL, SHIFT = "ctrl", "shift"

# (key, 需要的修飾鍵) -> Session.command 名稱；較具體的組合放前面
DEFAULT_KEYMAP: Dict[Tuple[int, frozenset], str] = {
    (pygame.K_z, frozenset({CTRL, SHIFT})): "redo",
    (pygame.K_z, frozenset({CTRL})): "undo",
    (pygame.K_y, frozenset({CTRL})): "redo",
    (pygame.K_DELETE, frozenset()): "delete",
    (pygame.K_BACKSPACE, frozenset()): "delete",
    (pygame.K_RIGHTBRACKET, frozenset()): "lengthen",
    (pygame.K_LEFTBRACKET, frozenset()): "shorten",
    (pygame.K_SPACE, frozenset()): "toggle_play",
    (pygame.K_ESCAPE, frozenset()): "stop",
}


def mods_of(mods: int) -> frozenset:
    out = set()
    if mods & (pygame.KMOD_CTRL | pygame.KMOD_META):
        out.add(CTRL)
    if mods & pygame.KMOD_SHIFT:
        out.add(SHIFT)
    return frozenset(out)


def is_union_click(mods: int) -> bool:
    """Shift 或 Ctrl/Cmd 按著點擊 = 加入選取。"""
    return bool(mods_of(mods))


def resolve_command(key: int, mods: int, keymap: Optional[Dict[Tuple[int, frozenset], str]] = None) -> Optional[str]:
    kmap = keymap if keymap is not None else DEFAULT_KEYMAP
    return kmap.get((key, mods_of(mods)))


def keycode_to_name(k: int) -> str:
    try:
        return pygame.key.name(k)
    except Exception:
        return str(k)


def describe_keymap(kmap: Optional[Dict[Tuple[int, frozenset], str]] = None) -> str:
    """狀態列用的簡短說明，例如 'ctrl+z undo'。"""
    kmap = kmap if kmap is not None else DEFAULT_KEYMAP
    parts = []
    for (key, mods), cmd in kmap.items():
        combo = "+".join(sorted(mods) + [keycode_to_name(key)])
        parts.append(f"{combo} {cmd}")
    return "  ".join(parts)
