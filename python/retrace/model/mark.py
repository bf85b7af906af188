from typing import Any, Dict, Iterable, Optional, Tuple


class Mark:
    """
    An inline annotation (emphasis, link, ...) attached to a node.

    Mark sets are plain tuples kept sorted by mark type rank; use the helpers
    below rather than building them by hand.
    """

    __slots__ = ("type", "attrs")

    none: Tuple["Mark", ...] = ()

    def __init__(self, mark_type, attrs: Dict[str, Any]):
        self.type = mark_type
        self.attrs = attrs

    def __eq__(self, other) -> bool:
        if self is other:
            return True
        if not isinstance(other, Mark):
            return NotImplemented
        return self.type is other.type and self.attrs == other.attrs

    __hash__ = None

    def __repr__(self) -> str:
        if self.attrs:
            return f"{self.type.name}({self.attrs})"
        return self.type.name

    def add_to_set(self, marks: Iterable["Mark"]) -> Tuple["Mark", ...]:
        """Return a copy of `marks` with this mark added, honouring exclusion and rank order."""
        marks = tuple(marks)
        copy = None
        placed = False
        for i, other in enumerate(marks):
            if self == other:
                return marks
            if self.type.excludes(other.type):
                if copy is None:
                    copy = list(marks[:i])
            elif other.type.excludes(self.type):
                return marks
            else:
                if not placed and other.type.rank > self.type.rank:
                    if copy is None:
                        copy = list(marks[:i])
                    copy.append(self)
                    placed = True
                if copy is not None:
                    copy.append(other)
        if copy is None:
            copy = list(marks)
        if not placed:
            copy.append(self)
        return tuple(copy)

    def remove_from_set(self, marks: Iterable["Mark"]) -> Tuple["Mark", ...]:
        return tuple(mark for mark in marks if mark != self)

    def is_in_set(self, marks: Iterable["Mark"]) -> bool:
        return any(self == mark for mark in marks)

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.name}
        if self.attrs:
            data["attrs"] = dict(self.attrs)
        return data

    @staticmethod
    def same_set(a: Iterable["Mark"], b: Iterable["Mark"]) -> bool:
        a, b = tuple(a), tuple(b)
        if a is b:
            return True
        return len(a) == len(b) and all(x == y for x, y in zip(a, b))

    @staticmethod
    def set_from(marks: Optional[Any]) -> Tuple["Mark", ...]:
        if not marks:
            return Mark.none
        if isinstance(marks, Mark):
            return (marks,)
        result: Tuple[Mark, ...] = ()
        for mark in sorted(marks, key=lambda m: m.type.rank):
            result = mark.add_to_set(result)
        return result
