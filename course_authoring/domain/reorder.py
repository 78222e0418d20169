from dataclasses import replace
from typing import Sequence, TypeVar

T = TypeVar("T")


def renumber(items: Sequence[T]) -> tuple[T, ...]:
    """Переписывает поле order у каждого элемента на его позицию в списке."""
    return tuple(
        item if item.order == index else replace(item, order=index)
        for index, item in enumerate(items)
    )


def move(items: Sequence[T], from_index: int, to_index: int) -> Sequence[T]:
    """Перенос элемента drag-and-drop: убрать с from_index и вставить на to_index.

    to_index считается уже после удаления элемента с from_index. Если индексы
    совпадают или выходят за пределы списка, возвращается сам входной список.
    """
    size = len(items)
    if from_index == to_index:
        return items
    if not (0 <= from_index < size and 0 <= to_index < size):
        return items

    moved = list(items)
    item = moved.pop(from_index)
    moved.insert(to_index, item)
    return renumber(moved)
