"""
Line classification for playbook output.

Each raw output line is decoded into styled spans (ANSI SGR sequences turned
into structured style data) and assigned a semantic category. Decoding is
stateless per line: every line starts from the neutral style, so escape
state never leaks between lines.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, List, NamedTuple, Optional, Tuple


class Category(str, Enum):
    """Semantic category of an output line."""

    FAILED = "failed"
    OK = "ok"
    CHANGED = "changed"
    HEADER = "header"
    DEFAULT = "default"


@dataclass(frozen=True)
class SpanStyle:
    """
    Style attached to a span of text.

    Colors use names a terminal renderer understands directly: the basic
    names (``red``, ``bright_blue``), ``color(N)`` for the 256-color palette
    and ``#rrggbb`` for truecolor.
    """

    fg: Optional[str] = None
    bg: Optional[str] = None
    bold: bool = False
    dim: bool = False
    italic: bool = False
    underline: bool = False

    @property
    def is_plain(self) -> bool:
        return self == NEUTRAL_STYLE


NEUTRAL_STYLE = SpanStyle()


@dataclass(frozen=True)
class StyledSpan:
    """A run of text sharing one style."""

    text: str
    style: SpanStyle = field(default=NEUTRAL_STYLE)


class ClassifiedLine(NamedTuple):
    """Result of classifying one line; unpacks as ``(category, spans)``."""

    category: Category
    spans: Tuple[StyledSpan, ...]

    @property
    def text(self) -> str:
        return "".join(span.text for span in self.spans)


# =============================================================================
# Category predicates
# =============================================================================

# Ordered: first match wins. A failure marker must never be masked by a
# "changed" substring elsewhere on the same line.
_PREDICATES: Tuple[Tuple[Category, Tuple[str, ...], Tuple[str, ...]], ...] = (
    # (category, prefixes, substrings)
    (Category.FAILED, ("fatal:", "failed:"), ("FAILED",)),
    (Category.OK, ("ok:",), ('"changed": false',)),
    (Category.CHANGED, ("changed:",), ('"changed": true',)),
    (Category.HEADER, (), ("PLAY [", "TASK [", "PLAY RECAP")),
)


def categorize(text: str) -> Category:
    """Categorize plain (already ANSI-stripped) text."""
    for category, prefixes, substrings in _PREDICATES:
        if prefixes and text.startswith(prefixes):
            return category
        if any(marker in text for marker in substrings):
            return category
    return Category.DEFAULT


# =============================================================================
# ANSI decoding
# =============================================================================

# CSI: ESC [ params intermediates final. OSC: ESC ] ... (BEL | ESC \).
# Two-byte escapes: ESC followed by a single char in @-Z, \, ], ^, _.
_ESCAPE_RE = re.compile(
    r"""
    \x1b\[(?P<params>[0-?]*)(?P<inter>[ -/]*)(?P<final>[@-~])
    | \x1b\][^\x07\x1b]*(?:\x07|\x1b\\)?
    | \x1b[@-Z\\^_]
    | \x1b
    """,
    re.VERBOSE,
)

# C0 controls other than tab; DEL as well
_CONTROL_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")

_BASIC_COLORS = ("black", "red", "green", "yellow", "blue", "magenta", "cyan", "white")


def _basic(index: int, bright: bool) -> str:
    name = _BASIC_COLORS[index]
    return f"bright_{name}" if bright else name


def _extended_color(codes: List[int], i: int) -> Tuple[Optional[str], int]:
    """
    Parse a 38/48 extended color starting after the 38/48 code at ``i``.

    Returns the color (or None if malformed) and the index of the next
    unconsumed code.
    """
    if i >= len(codes):
        return None, i
    mode = codes[i]
    if mode == 5:
        if i + 1 < len(codes) and 0 <= codes[i + 1] <= 255:
            return f"color({codes[i + 1]})", i + 2
        return None, i + 2
    if mode == 2:
        rgb = codes[i + 1:i + 4]
        if len(rgb) == 3 and all(0 <= c <= 255 for c in rgb):
            return "#{:02x}{:02x}{:02x}".format(*rgb), i + 4
        return None, i + 4
    return None, i + 1


def apply_sgr(style: SpanStyle, params: str) -> SpanStyle:
    """Apply one SGR parameter string (e.g. ``"1;31"``) to a style."""
    if not params:
        return NEUTRAL_STYLE

    codes: List[int] = []
    for part in params.replace(":", ";").split(";"):
        # Empty parameters default to 0 (reset)
        codes.append(int(part) if part.isdigit() else 0)

    i = 0
    while i < len(codes):
        code = codes[i]
        i += 1
        if code == 0:
            style = NEUTRAL_STYLE
        elif code == 1:
            style = replace(style, bold=True)
        elif code == 2:
            style = replace(style, dim=True)
        elif code == 3:
            style = replace(style, italic=True)
        elif code == 4:
            style = replace(style, underline=True)
        elif code == 22:
            style = replace(style, bold=False, dim=False)
        elif code == 23:
            style = replace(style, italic=False)
        elif code == 24:
            style = replace(style, underline=False)
        elif 30 <= code <= 37:
            style = replace(style, fg=_basic(code - 30, False))
        elif 90 <= code <= 97:
            style = replace(style, fg=_basic(code - 90, True))
        elif code == 39:
            style = replace(style, fg=None)
        elif 40 <= code <= 47:
            style = replace(style, bg=_basic(code - 40, False))
        elif 100 <= code <= 107:
            style = replace(style, bg=_basic(code - 100, True))
        elif code == 49:
            style = replace(style, bg=None)
        elif code in (38, 48):
            color, i = _extended_color(codes, i)
            if color is not None:
                style = replace(style, fg=color) if code == 38 else replace(style, bg=color)
        # anything else (blink, inverse, fonts...) is ignored
    return style


def _tokens(line: str) -> Iterator[Tuple[Optional[str], Optional[str]]]:
    """Yield ``(text, None)`` for text runs and ``(None, params)`` for SGR."""
    pos = 0
    for match in _ESCAPE_RE.finditer(line):
        if match.start() > pos:
            yield line[pos:match.start()], None
        if match.group("final") == "m" and not match.group("inter"):
            yield None, match.group("params")
        pos = match.end()
    if pos < len(line):
        yield line[pos:], None


def decode_ansi(line: str) -> List[StyledSpan]:
    """
    Decode a raw line into styled spans.

    SGR sequences change the current style; every other escape sequence and
    control character (except tab) is dropped. Adjacent runs with the same
    style are coalesced and empty spans are never emitted.
    """
    spans: List[StyledSpan] = []
    style = NEUTRAL_STYLE

    for text, params in _tokens(line):
        if params is not None:
            style = apply_sgr(style, params)
            continue
        text = _CONTROL_RE.sub("", text)
        if not text:
            continue
        if spans and spans[-1].style == style:
            spans[-1] = StyledSpan(spans[-1].text + text, style)
        else:
            spans.append(StyledSpan(text, style))

    return spans


def plain_text(line: str) -> str:
    """Return the line with escape sequences and control characters removed."""
    return "".join(span.text for span in decode_ansi(line))


def is_renderable(snippet: Optional[str]) -> bool:
    """Empty or whitespace-only snippets carry nothing to render."""
    return bool(snippet and snippet.strip())


def classify(raw_line: str) -> ClassifiedLine:
    """
    Classify one raw output line.

    Category predicates run against the decoded plain text, so colored
    output such as ``ESC[0;31mfatal: ...`` is still recognized.
    """
    spans = decode_ansi(raw_line)
    text = "".join(span.text for span in spans)
    return ClassifiedLine(categorize(text), tuple(spans))
