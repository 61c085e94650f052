import pytest

from elx.elx_errors import ELError
from elx.elx_runtime import ELProcessor
from elx.elx_stream import EMPTY, ELOptional, Stream


@pytest.fixture
def el():
    p = ELProcessor()
    p.define_bean('nums', [3, 1, 4, 1, 5])
    return p


def test_filter_map_to_list(el):
    assert el.eval("[1, 2, 3, 4].stream().filter(x -> x % 2 == 0).map(x -> x * 10).toList()") == [20, 40]


def test_sorting(el):
    assert el.eval("nums.stream().sorted().toList()") == [1, 1, 3, 4, 5]
    assert el.eval("nums.stream().sorted((a, b) -> b - a).toList()") == [5, 4, 3, 1, 1]


def test_distinct_limit_substream(el):
    assert el.eval("nums.stream().distinct().toList()") == [3, 1, 4, 5]
    assert el.eval("nums.stream().limit(2).toList()") == [3, 1]
    assert el.eval("nums.stream().substream(1, 3).toList()") == [1, 4]
    assert el.eval("nums.stream().substream(3).toArray()") == [1, 5]


def test_flat_map(el):
    assert el.eval("[[1, 2], [3]].stream().flatMap(x -> x.stream()).toList()") == [1, 2, 3]
    with pytest.raises(ELError):
        el.eval("[[1]].stream().flatMap(x -> x).toList()")


def test_reductions(el):
    assert el.eval("nums.stream().sum()") == 14
    assert el.eval("nums.stream().count()") == 5
    assert el.eval("nums.stream().reduce((a, b) -> a + b).get()") == 14
    assert el.eval("nums.stream().reduce(10, (a, b) -> a + b)") == 24
    assert el.eval("[1, 2, 3].stream().average().get()") == 2.0
    assert el.eval("[].stream().average()") == EMPTY


def test_extremes(el):
    assert el.eval("nums.stream().max().get()") == 5
    assert el.eval("nums.stream().min().get()") == 1
    assert el.eval("nums.stream().max((a, b) -> b - a).get()") == 1
    assert el.eval("[].stream().max().orElse(0)") == 0


def test_matching(el):
    assert el.eval("nums.stream().anyMatch(x -> x > 4).get()") is True
    assert el.eval("nums.stream().allMatch(x -> x > 0).get()") is True
    assert el.eval("nums.stream().noneMatch(x -> x > 4).get()") is False
    assert el.eval("[].stream().anyMatch(x -> true)") == EMPTY


def test_find_first_and_optional_helpers(el):
    assert el.eval("nums.stream().findFirst().get()") == 3
    assert el.eval("[].stream().findFirst().orElseGet(() -> 'none')") == "none"
    assert el.eval("seen = []; nums.stream().forEach(x -> seen.append(x)); seen") == [3, 1, 4, 1, 5]
    assert el.eval("out = []; nums.stream().findFirst().ifPresent(x -> out.append(x)); out") == [3]


def test_peek_runs_lazily(el):
    assert el.eval("log = []; s = nums.stream().peek(x -> log.append(x)).limit(2); log") == []
    assert el.eval("s.toList(); log") == [3, 1]


def test_optional_directly():
    present = ELOptional(5, True)
    assert present.get() == 5
    assert present.or_else(0) == 5
    assert EMPTY.or_else(0) == 0
    assert repr(present) == "Optional[5]"
    assert repr(EMPTY) == "Optional.empty"
    with pytest.raises(ELError, match="No value present"):
        EMPTY.get()
    assert ELOptional(None, True) != EMPTY


def test_stream_is_iterable():
    assert list(Stream((1, 2))) == [1, 2]
    assert Stream({1}).to_list() == [1]
