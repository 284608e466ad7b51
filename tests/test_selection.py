"""Tests for grid click semantics, deletion and batch duration steps."""
import pytest

from notes.selection import SelectionManager


@pytest.fixture
def sel(store):
    return SelectionManager(store)


class TestClick:
    def test_empty_cell_creates_and_selects_exclusively(self, sel, store):
        a = sel.click(60, 0)
        b = sel.click(62, 0)
        assert sel.ids == {b}
        assert len(store) == 2 and a in store

    def test_union_click_on_empty_cell_adds(self, sel):
        a = sel.click(60, 0)
        b = sel.click(62, 0, union=True)
        assert sel.ids == {a, b}

    def test_click_selected_note_deselects(self, sel, store):
        a = sel.click(60, 0)
        assert sel.click(60, 0) is None
        assert sel.ids == set()
        assert a in store

    def test_plain_click_unselected_replaces(self, sel):
        a = sel.click(60, 0)
        b = sel.click(62, 0, union=True)
        sel.click(60, 0)  # deselect a
        assert sel.ids == {b}
        sel.click(60, 0)
        assert sel.ids == {a}

    def test_union_click_unselected_adds(self, sel):
        a = sel.click(60, 0)
        b = sel.click(62, 0)
        sel.click(60, 0, union=True)
        assert sel.ids == {a, b}

    def test_deleted_notes_pruned(self, sel, store):
        a = sel.click(60, 0)
        store.remove(60, 0)
        assert a not in sel
        assert len(sel) == 0


class TestDelete:
    def test_delete_selection(self, sel, store):
        sel.click(60, 0)
        sel.click(62, 0, union=True)
        keep = store.place(64, 0)
        assert sel.delete() == 2
        assert [n.id for n in store] == [keep]
        assert len(sel) == 0

    def test_delete_hovered_when_nothing_selected(self, sel, store):
        store.place(60, 4)
        sel.hover_enter(60, 4)
        assert sel.delete() == 1
        assert len(store) == 0

    def test_delete_nothing(self, sel, store):
        store.place(60, 4)
        sel.hover_enter(61, 4)
        assert sel.delete() == 0
        sel.hover_leave()
        assert sel.delete() == 0
        assert len(store) == 1

    def test_stale_hover_leave_ignored(self, sel):
        sel.hover_enter(60, 1)
        sel.hover_leave(60, 0)
        assert sel.hovered == (60, 1)


class TestDurationSteps:
    def test_batch_lengthen_single_undo(self, sel, store):
        ids = [sel.click(60 + i, 0, union=True) for i in range(3)]
        assert sel.lengthen() == 3
        assert {store.get(i).duration for i in ids} == {"half"}
        store.undo()
        assert {store.get(i).duration for i in ids} == {"quarter"}

    def test_shorten_clamps(self, sel, store):
        nid = sel.click(60, 0)
        for _ in range(5):
            sel.shorten()
        assert store.get(nid).duration == "sixteenth"
        assert sel.shorten() == 0

    def test_lengthen_without_selection(self, sel, store):
        store.place(60, 0)
        assert sel.lengthen() == 0
