from dataclasses import dataclass

import pytest

from course_authoring.domain.entities import Lesson
from course_authoring.domain.reorder import move, renumber


def make_lessons(n):
    return tuple(Lesson(id=f"l{i}", title=f"Lesson {i}", order=i) for i in range(n))


@pytest.mark.parametrize("size", [2, 3, 5])
def test_move_rewrites_order_for_all_pairs(size):
    """После переноса order совпадает с позицией, набор id не меняется"""
    lessons = make_lessons(size)
    for src in range(size):
        for dst in range(size):
            result = move(lessons, src, dst)
            assert [l.order for l in result] == list(range(size))
            assert sorted(l.id for l in result) == sorted(l.id for l in lessons)
            assert result[dst].id == lessons[src].id


def test_move_same_index_returns_input():
    """Перенос на то же место ничего не меняет"""
    lessons = make_lessons(3)
    assert move(lessons, 1, 1) is lessons


@pytest.mark.parametrize("src,dst", [(-1, 0), (0, 3), (3, 0), (0, -2), (10, 10)])
def test_move_out_of_range_is_noop(src, dst):
    """Индексы вне списка игнорируются"""
    lessons = make_lessons(3)
    assert move(lessons, src, dst) is lessons


def test_move_down_inserts_after_removal():
    """to_index считается после удаления элемента"""
    lessons = make_lessons(4)
    result = move(lessons, 0, 2)
    assert [l.id for l in result] == ["l1", "l2", "l0", "l3"]


def test_move_does_not_touch_input():
    lessons = make_lessons(3)
    move(lessons, 2, 0)
    assert [l.order for l in lessons] == [0, 1, 2]
    assert [l.id for l in lessons] == ["l0", "l1", "l2"]


def test_renumber_fixes_gaps():
    @dataclass(frozen=True)
    class Item:
        id: str
        order: int

    items = [Item("a", 3), Item("b", 7), Item("c", 7)]
    assert [i.order for i in renumber(items)] == [0, 1, 2]
