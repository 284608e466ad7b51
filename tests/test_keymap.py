"""Tests for key command resolution."""
import pygame
import pytest

from input.keymap import describe_keymap, is_union_click, resolve_command


@pytest.mark.parametrize("key,mods,cmd", [
    (pygame.K_z, pygame.KMOD_LCTRL, "undo"),
    (pygame.K_z, pygame.KMOD_LCTRL | pygame.KMOD_LSHIFT, "redo"),
    (pygame.K_y, pygame.KMOD_RCTRL, "redo"),
    (pygame.K_DELETE, 0, "delete"),
    (pygame.K_BACKSPACE, 0, "delete"),
    (pygame.K_RIGHTBRACKET, 0, "lengthen"),
    (pygame.K_LEFTBRACKET, 0, "shorten"),
    (pygame.K_SPACE, 0, "toggle_play"),
    (pygame.K_ESCAPE, 0, "stop"),
])
def test_resolve(key, mods, cmd):
    assert resolve_command(key, mods) == cmd


def test_unbound():
    assert resolve_command(pygame.K_z, 0) is None
    assert resolve_command(pygame.K_q, pygame.KMOD_LCTRL) is None


def test_union_click():
    assert is_union_click(pygame.KMOD_LSHIFT)
    assert is_union_click(pygame.KMOD_LCTRL)
    assert not is_union_click(0)


def test_describe_lists_every_command():
    text = describe_keymap()
    for cmd in ("undo", "redo", "delete", "lengthen", "shorten"):
        assert cmd in text
