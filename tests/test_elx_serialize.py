import pytest

from elx.elx_serialize import deserialize, detect_format, serialize


def test_detect_format():
    assert detect_format('  {"a": 1}') == 'json'
    assert detect_format('[1]') == 'json'
    assert detect_format('a: 1') == 'yaml'
    assert detect_format(None) == 'yaml'


def test_json_round_trip():
    data = {'a': [1, 2], 'b': {'c': None}}
    text = serialize(data)
    assert '\n' in text
    assert deserialize(text) == data
    assert serialize(data, pretty=False) == '{"a": [1, 2], "b": {"c": null}}'


def test_yaml_round_trip():
    data = {'name': 'x', 'items': [1, 2]}
    text = serialize(data, fmt='yaml')
    assert text.startswith('name: x')
    assert deserialize(text, fmt='yaml') == data


def test_bytes_input():
    assert deserialize(b'{"a": 1}') == {'a': 1}


def test_declared_json_falls_back_to_yaml():
    assert deserialize("a: 1\nb: two\n", fmt='json') == {'a': 1, 'b': 'two'}


def test_tuples_become_lists():
    assert deserialize(serialize({'t': (1, 2)})) == {'t': [1, 2]}


def test_unsupported_format():
    with pytest.raises(ValueError):
        serialize({}, fmt='xml')
    with pytest.raises(ValueError):
        deserialize("<a/>", fmt='xml')
