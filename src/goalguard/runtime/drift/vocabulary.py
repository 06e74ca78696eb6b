"""Keyword extraction and stem comparison for the drift detector."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_TOKEN = re.compile(r"[a-z0-9]+")

MIN_TOKEN_LENGTH = 3

STOP_WORDS = frozenset(
    """
    the and for with from into onto that this these those then than when what which while
    are was were been being have has had not but its it's our your their there here all any
    each few more most other some such only own same too very can will just should would could
    out off over under again once also about after before between both does did doing
    use using used make makes made get gets set sets add adds new via per
    """.split()
)

# Terms shared by nearly every software task and shell command.
GENERIC_TERMS = frozenset(
    """
    src lib libs dist build builds test tests spec specs file files dir dirs path paths
    code app apps main index util utils helper helpers module modules package packages
    run runs runner script scripts cmd command commands bin usr tmp var etc home local
    node npm npx pnpm yarn python pip uv poetry git bash zsh env
    json yaml yml toml txt md html css scss js jsx ts tsx py mjs cjs lock log logs
    config configs default defaults value values data type types item items
    function functions class classes method methods object objects string strings
    update updates change changes fix fixes implement implementation feature features
    task tasks work step steps todo done
    http https www com org
    """.split()
)


def tokenize(text: str) -> set[str]:
    """Salient lowercase tokens of *text* (camelCase is split first)."""
    spaced = _CAMEL_BOUNDARY.sub(r"\1 \2", text)
    tokens: set[str] = set()
    for tok in _TOKEN.findall(spaced.lower()):
        if len(tok) < MIN_TOKEN_LENGTH or tok.isdigit():
            continue
        if tok in STOP_WORDS or tok in GENERIC_TERMS:
            continue
        tokens.add(tok)
    return tokens


def stem(token: str) -> str:
    """Strip common English plural suffixes."""
    if len(token) > 4 and token.endswith("ies"):
        return token[:-3] + "y"
    if len(token) > 4 and token.endswith(("sses", "xes", "zes", "ches", "shes")):
        return token[:-2]
    if len(token) > 3 and token.endswith("s") and not token.endswith(("ss", "us", "is")):
        return token[:-1]
    return token


def _common_prefix(a: str, b: str) -> int:
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


def stems_match(a: str, b: str, *, prefix: int = 5) -> bool:
    sa, sb = stem(a), stem(b)
    if sa == sb:
        return True
    return _common_prefix(sa, sb) >= prefix


def overlaps(left: Iterable[str], right: Iterable[str], *, prefix: int = 5) -> bool:
    """Whether any token of *left* shares a stem with any token of *right*."""
    right = list(right)
    return any(stems_match(a, b, prefix=prefix) for a in left for b in right)
