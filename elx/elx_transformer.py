"""
Transforms the raw koine parse tree into expression nodes from elx_nodes.
"""
import re

from elx.elx_nodes import (
    Composite, LiteralText, Deferred, Dynamic,
    Identifier, MethodArguments, DotSuffix, BracketSuffix, Value, Function,
    IntegerLit, FloatLit, StringLit, TrueLit, FalseLit, NullLit,
    Empty, Not, Negative, Choice, Semicolon,
    LambdaParameters, Lambda, ListData, SetData, MapEntry, MapData,
    And, Or, Equal, NotEqual, LessThan, GreaterThan, LessEq, GreaterEq,
    Plus, Minus, Mult, Div, Mod, Concat, Assign,
)

BINARY_TAGS = {
    'and': And, 'or': Or, 'eq': Equal, 'ne': NotEqual,
    'lt': LessThan, 'gt': GreaterThan, 'le': LessEq, 'ge': GreaterEq,
    'plus': Plus, 'minus': Minus, 'mult': Mult, 'div': Div, 'mod': Mod,
    'concat': Concat,
}

UNARY_TAGS = {'empty': Empty, 'not': Not, 'negative': Negative}

_TEXT_ESCAPE = re.compile(r"\\([$#]\{)")
_STRING_ESCAPE = re.compile(r"\\([\\'\"])")


def _flatten(children) -> list:
    """Child nodes as one flat list; koine may nest repetition groups."""
    if children is None:
        return []
    if isinstance(children, dict):
        return [children]
    out = []
    for c in children:
        if isinstance(c, list):
            out.extend(_flatten(c))
        elif isinstance(c, dict):
            out.append(c)
    return out


class ELTransformer:
    def _loc(self, node):
        line = node.get('line'); col = node.get('col')
        if line is None or col is None:
            return None
        return {'line': line, 'col': col, 'tag': node.get('tag'), 'text': node.get('text')}

    def _all(self, children):
        return tuple(self.transform(c) for c in children)

    def _single_or(self, children, build):
        """Precedence levels with one child are that child."""
        if len(children) == 1:
            return self.transform(children[0])
        return build(self._all(children))

    def transform(self, node):
        if isinstance(node, list):
            return [self.transform(n) for n in node]
        if not isinstance(node, dict):
            return node

        tag = node.get('tag')
        children = _flatten(node.get('children'))
        loc = self._loc(node)

        match tag:
            # Template level
            case 'composite':
                return Composite(self._all(children), loc=loc)
            case 'literal-text':
                return LiteralText(_TEXT_ESCAPE.sub(r"\1", node.get('text', '')), loc=loc)
            case 'dynamic':
                return Dynamic(self.transform(children[0]), loc=loc)
            case 'deferred':
                return Deferred(self.transform(children[0]), loc=loc)

            # Literals
            case 'integer':
                return IntegerLit(node['text'], loc=loc)
            case 'float':
                return FloatLit(node['text'], loc=loc)
            case 'string':
                return StringLit(_STRING_ESCAPE.sub(r"\1", node['text'][1:-1]), loc=loc)
            case 'true':
                return TrueLit(loc=loc)
            case 'false':
                return FalseLit(loc=loc)
            case 'null':
                return NullLit(loc=loc)

            # Names and chains
            case 'identifier':
                return Identifier(node['text'], loc=loc)
            case 'method-arguments':
                return MethodArguments(self._all(children), loc=loc)
            case 'dot-suffix':
                name, *args = children
                return DotSuffix(name['text'], self.transform(args[0]) if args else None, loc=loc)
            case 'bracket-suffix':
                key, *args = children
                return BracketSuffix(self.transform(key), self.transform(args[0]) if args else None, loc=loc)
            case 'value':
                return self._single_or(children, lambda parts: Value(parts[0], parts[1:], loc=loc))
            case 'function':
                name, *arg_lists = children
                prefix, _, local = name['text'].rpartition(':')
                return Function(prefix, local, self._all(arg_lists), loc=loc)

            # Operators
            case 'operation':
                left = self.transform(children[0])
                for op, right in zip(children[1::2], children[2::2]):
                    left = BINARY_TAGS[op['tag']](left, self.transform(right), loc=self._loc(op))
                return left
            case 'empty' | 'not' | 'negative':
                return UNARY_TAGS[tag](self.transform(children[0]), loc=loc)
            case 'choice':
                return self._single_or(children, lambda parts: Choice(*parts, loc=loc))
            case 'assign':
                return self._single_or(children, lambda parts: Assign(*parts, loc=loc))
            case 'semicolon':
                return self._single_or(children, lambda parts: Semicolon(parts, loc=loc))
            case 'parenthesized':
                return self.transform(children[0])

            # Lambdas and collections
            case 'lambda-parameters':
                return LambdaParameters(tuple(c['text'] for c in children), loc=loc)
            case 'lambda':
                params, body = self._all(children)
                return Lambda(params, body, loc=loc)
            case 'lambda-call':
                fn, *arg_lists = children
                inner = self.transform(fn)
                return Lambda(inner.params, inner.body, self._all(arg_lists), loc=loc)
            case 'list':
                return ListData(self._all(children), loc=loc)
            case 'set':
                return SetData(self._all(children), loc=loc)
            case 'map-entry':
                key, value = self._all(children)
                return MapEntry(key, value, loc=loc)
            case 'map':
                return MapData(self._all(children), loc=loc)
            case _:
                raise ValueError(f"Unknown node tag: {tag!r}")
