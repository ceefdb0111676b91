"""Quote-escaping repair pass for model-generated JSON.

Language models regularly emit string values containing raw double
quotes -- ``"title": "Concerto "Live" al Teatro"`` -- which breaks
``json.loads`` for the whole response.  :func:`repair_unescaped_quotes`
walks the text once, tracking whether the cursor is inside a string
value, and escapes any quote that cannot be a closing quote.

A quote inside a string is treated as closing only when the next
non-whitespace character is one that can legally follow a string token
(``,`` ``}`` ``]`` ``:``) or the end of input.  Everything else is an
embedded quote and gets a backslash.  Skipping whitespace before the
test refines the plainer "whitespace terminates" rule, which would leave
``"Live" al`` unescaped.  Already-escaped characters are copied through
untouched, so valid JSON comes out byte-for-byte equal.

This is heuristic pattern matching over possibly-malformed input and is
kept as a pure function so it can be tested in isolation.
"""

_TERMINATORS = frozenset(",}]:")


def _closes_string(text: str, quote_index: int) -> bool:
    """Return True if the quote at *quote_index* can terminate a string."""
    i = quote_index + 1
    length = len(text)
    while i < length and text[i].isspace():
        i += 1
    return i == length or text[i] in _TERMINATORS


def repair_unescaped_quotes(text: str) -> str:
    """Escape embedded double quotes inside JSON string values.

    Args:
        text: Raw JSON-ish text returned by the model.

    Returns:
        The text with unescaped interior quotes replaced by ``\\"``.
    """
    out: list[str] = []
    in_string = False
    i = 0
    length = len(text)

    while i < length:
        ch = text[i]

        if not in_string:
            if ch == '"':
                in_string = True
            out.append(ch)
            i += 1
            continue

        if ch == "\\":
            # Copy the escape and the escaped character as a unit.
            out.append(text[i : i + 2])
            i += 2
            continue

        if ch == '"':
            if _closes_string(text, i):
                in_string = False
                out.append(ch)
            else:
                out.append('\\"')
            i += 1
            continue

        out.append(ch)
        i += 1

    return "".join(out)
