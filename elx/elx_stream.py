"""
Lazy collection pipelines reachable from expressions as ``list.stream()``.

Operations keep the expression-level camelCase names (``flatMap``,
``anyMatch``, ``orElse``). Overloads that share a name are separate Python
methods published under the same name with ``el_method``.
"""
import functools
import itertools
from typing import Any, Iterable, Iterator, List

from elx.elx_arithmetic import add, divide
from elx.elx_coerce import coerce_to_boolean, coerce_to_number, compare, equals
from elx.elx_errors import ELError
from elx.elx_interpreter import LambdaExpression
from elx.elx_reflect import el_method


def _comparator_key(comparator: LambdaExpression):
    def cmp(a, b):
        return int(coerce_to_number(comparator(a, b)))
    return functools.cmp_to_key(cmp)


_natural_key = functools.cmp_to_key(compare)


class ELOptional:
    """A value that may be absent; returned by ``findFirst``, ``max``, ``average`` and friends."""
    def __init__(self, value: Any = None, present: bool = False):
        self._value = value
        self._present = present

    def get(self) -> Any:
        if not self._present:
            raise ELError("No value present")
        return self._value

    @el_method(name='ifPresent')
    def if_present(self, consumer: LambdaExpression) -> None:
        if self._present:
            consumer(self._value)

    @el_method(name='orElse')
    def or_else(self, other: object) -> Any:
        return self._value if self._present else other

    @el_method(name='orElseGet')
    def or_else_get(self, other: LambdaExpression) -> Any:
        return self._value if self._present else other()

    def __eq__(self, other):
        return isinstance(other, ELOptional) and self._present == other._present and self._value == other._value

    def __hash__(self):
        return hash((self._present, repr(self._value)))

    def __repr__(self):
        return f"Optional[{self._value!r}]" if self._present else "Optional.empty"


EMPTY = ELOptional()


class Stream:
    def __init__(self, source: Iterable[Any]):
        self._iterator = iter(source)

    def __iter__(self) -> Iterator[Any]:
        return self._iterator

    # -----------------------------------------------------------------
    # Intermediate operations
    # -----------------------------------------------------------------

    def filter(self, predicate: LambdaExpression) -> 'Stream':
        return Stream(x for x in self._iterator if coerce_to_boolean(predicate(x)))

    def map(self, mapper: LambdaExpression) -> 'Stream':
        return Stream(mapper(x) for x in self._iterator)

    @el_method(name='flatMap')
    def flat_map(self, mapper: LambdaExpression) -> 'Stream':
        def gen():
            for x in self._iterator:
                inner = mapper(x)
                if not isinstance(inner, Stream):
                    raise ELError(f"flatMap mapper must return a Stream, not {type(inner).__name__}")
                yield from inner
        return Stream(gen())

    def distinct(self) -> 'Stream':
        def gen():
            seen: List[Any] = []
            for x in self._iterator:
                if not any(equals(x, s) for s in seen):
                    seen.append(x)
                    yield x
        return Stream(gen())

    @el_method(name='sorted')
    def sorted_natural(self) -> 'Stream':
        return Stream(sorted(self._iterator, key=_natural_key))

    @el_method(name='sorted')
    def sorted_by(self, comparator: LambdaExpression) -> 'Stream':
        return Stream(sorted(self._iterator, key=_comparator_key(comparator)))

    def peek(self, consumer: LambdaExpression) -> 'Stream':
        def gen():
            for x in self._iterator:
                consumer(x)
                yield x
        return Stream(gen())

    def limit(self, count: int) -> 'Stream':
        return Stream(itertools.islice(self._iterator, max(count, 0)))

    @el_method(name='substream')
    def substream_from(self, start: int) -> 'Stream':
        return Stream(itertools.islice(self._iterator, max(start, 0), None))

    @el_method(name='substream')
    def substream_range(self, start: int, end: int) -> 'Stream':
        start = max(start, 0)
        return Stream(itertools.islice(self._iterator, start, max(end, start)))

    # -----------------------------------------------------------------
    # Terminal operations
    # -----------------------------------------------------------------

    @el_method(name='forEach')
    def for_each(self, consumer: LambdaExpression) -> None:
        for x in self._iterator:
            consumer(x)

    def iterator(self) -> Iterator[Any]:
        return self._iterator

    @el_method(name='toArray')
    def to_array(self) -> list:
        return list(self._iterator)

    @el_method(name='toList')
    def to_list(self) -> list:
        return list(self._iterator)

    @el_method(name='reduce')
    def reduce_from(self, base: object, op: LambdaExpression) -> Any:
        result = base
        for x in self._iterator:
            result = op(result, x)
        return result

    @el_method(name='reduce')
    def reduce_optional(self, op: LambdaExpression) -> ELOptional:
        items = iter(self._iterator)
        try:
            result = next(items)
        except StopIteration:
            return EMPTY
        for x in items:
            result = op(result, x)
        return ELOptional(result, True)

    def _extreme(self, key, want: int) -> ELOptional:
        result = None
        found = False
        for x in self._iterator:
            if not found:
                result, found = x, True
                continue
            order = (key(x) > key(result)) - (key(x) < key(result))
            if order == want:
                result = x
        return ELOptional(result, True) if found else EMPTY

    @el_method(name='max')
    def max_natural(self) -> ELOptional:
        return self._extreme(_natural_key, 1)

    @el_method(name='max')
    def max_by(self, comparator: LambdaExpression) -> ELOptional:
        return self._extreme(_comparator_key(comparator), 1)

    @el_method(name='min')
    def min_natural(self) -> ELOptional:
        return self._extreme(_natural_key, -1)

    @el_method(name='min')
    def min_by(self, comparator: LambdaExpression) -> ELOptional:
        return self._extreme(_comparator_key(comparator), -1)

    def average(self) -> ELOptional:
        total, count = 0, 0
        for x in self._iterator:
            total = add(total, x)
            count += 1
        if count == 0:
            return EMPTY
        return ELOptional(divide(total, count), True)

    def sum(self) -> Any:
        total = 0
        for x in self._iterator:
            total = add(total, x)
        return total

    def count(self) -> int:
        return sum(1 for _ in self._iterator)

    def _match(self, predicate: LambdaExpression, stop_on: bool, result_on_stop: bool) -> ELOptional:
        items = iter(self._iterator)
        try:
            first = next(items)
        except StopIteration:
            return EMPTY
        for x in itertools.chain([first], items):
            if coerce_to_boolean(predicate(x)) == stop_on:
                return ELOptional(result_on_stop, True)
        return ELOptional(not result_on_stop, True)

    @el_method(name='anyMatch')
    def any_match(self, predicate: LambdaExpression) -> ELOptional:
        return self._match(predicate, True, True)

    @el_method(name='allMatch')
    def all_match(self, predicate: LambdaExpression) -> ELOptional:
        return self._match(predicate, False, False)

    @el_method(name='noneMatch')
    def none_match(self, predicate: LambdaExpression) -> ELOptional:
        return self._match(predicate, True, False)

    @el_method(name='findFirst')
    def find_first(self) -> ELOptional:
        for x in self._iterator:
            return ELOptional(x, True)
        return EMPTY

    def __repr__(self):
        return "Stream(...)"
