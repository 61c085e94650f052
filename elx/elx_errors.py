"""
Error taxonomy for the expression evaluator.

Every failure raised while building or evaluating an expression derives from
ELError so embedding code can catch the whole family with one clause.
"""
from typing import Optional


class ELError(Exception):
    """Base class for all evaluation and build failures."""
    pass


class PropertyNotFound(ELError):
    def __init__(self, message: str, base=None, prop=None):
        super().__init__(message)
        self.base = base
        self.prop = prop


class UnreachableBase(PropertyNotFound):
    """The leftmost value of a chain evaluated to None before a write/type/invoke."""
    pass


class UnreachableProperty(PropertyNotFound):
    """An intermediate hop evaluated to None while further hops remain."""
    pass


class PropertyNotWritable(ELError):
    pass


class MethodNotFound(ELError):
    pass


class AmbiguousMethod(MethodNotFound):
    def __init__(self, message: str, candidates=()):
        super().__init__(message)
        self.candidates = list(candidates)


class CoercionError(ELError, ValueError):
    def __init__(self, message: str, value=None, target=None):
        super().__init__(message)
        self.value = value
        self.target = target


class InvocationFault(ELError):
    """A host callable raised; the host exception is kept as __cause__."""
    pass


class FunctionMapperMissing(ELError):
    pass


class UnsupportedOperation(ELError, TypeError):
    """The object does not support this operation, e.g. writes to a frozen binding table."""
    pass


class ParseError(ELError):
    def __init__(self, message: str, source: str = "", line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.source = source
        self.line = line
        self.col = col

    def __str__(self) -> str:
        msg = self.args[0] if self.args else "parse error"
        if self.line is not None:
            return f"{msg} (line {self.line}, col {self.col}) in [{self.source}]"
        return f"{msg} in [{self.source}]"
