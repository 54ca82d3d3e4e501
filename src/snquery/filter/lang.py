"""Encoded query parser using pyparsing.

Splits a raw encoded query such as ``active=true^priority<=2^ORstate=1``
into terms and the joins between them. This is a structural split only;
values are not interpreted.
"""

import re
from typing import List, Optional

from pyparsing import (
    Literal,
    ParseException,
    Regex,
    StringEnd,
    ZeroOrMore,
)

from ..errors import QuerySyntaxError
from .grammar import ALL_TOKENS


class QueryTerm:
    """One ``field<operator><value>`` term of an encoded query."""

    def __init__(self, field: str, operator: str, value: str, join: Optional[str] = None):
        self.field = field
        self.operator = operator
        self.value = value
        self.join = join  # separator before this term: "^", "^OR", "^NQ" or None

    def __repr__(self):
        return f"QueryTerm({self.join!r}, {self.field!r}, {self.operator!r}, {self.value!r})"

    def __eq__(self, other):
        if not isinstance(other, QueryTerm):
            return NotImplemented
        return (self.field, self.operator, self.value, self.join) == (
            other.field, other.operator, other.value, other.join
        )


class Join:
    """Marker for a separator between two terms."""

    def __init__(self, token: str):
        self.token = token

    def __repr__(self):
        return f"Join({self.token!r})"


_OPERATOR_ALTERNATION = "|".join(re.escape(token) for token in ALL_TOKENS)

def _make_term(s, loc, toks):
    """Build a QueryTerm from the named groups of the term regex."""
    return QueryTerm(toks["field"], toks["op"], toks["value"])


def _make_join(s, loc, toks):
    return Join(toks[0])


def create_parser():
    """Create and return the encoded query parser."""
    # Field names are matched lazily so the first operator token ends them.
    term = Regex(r"(?P<field>[A-Za-z_][A-Za-z0-9_.]*?)"
                 rf"(?P<op>{_OPERATOR_ALTERNATION})"
                 r"(?P<value>[^^]*)").setParseAction(_make_term)

    # ^NQ and ^OR must be tried before the bare separator
    join = (Literal("^NQ") | Literal("^OR") | Literal("^")).setParseAction(_make_join)

    query = term + ZeroOrMore(join + term) + StringEnd()
    return query


_parser = create_parser()


def parse_query(query: str) -> List[QueryTerm]:
    """Parse an encoded query into terms.

    Args:
        query: Encoded query string

    Returns:
        Terms in order; each carries the separator that preceded it

    Raises:
        QuerySyntaxError: If the string cannot be split into terms
    """
    text = query.strip()
    if not text:
        return []
    try:
        result = _parser.parseString(text, parseAll=True)
    except ParseException as e:
        raise QuerySyntaxError(f"Invalid query syntax: {e}")

    terms: List[QueryTerm] = []
    pending_join: Optional[str] = None
    for item in result:
        if isinstance(item, Join):
            pending_join = item.token
        elif isinstance(item, QueryTerm):
            item.join = pending_join
            terms.append(item)
            pending_join = None
    return terms
