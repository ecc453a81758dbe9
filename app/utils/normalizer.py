"""
Answer normalization for deterministic comparison

Applied identically to the submitted and the canonical side of every
exact-match check.
"""
import re
from typing import Any, Mapping, Optional

CHOICE_KEYS = ("A", "B", "C", "D")

_WHITESPACE = re.compile(r"\s+")
_OPTION_PREFIX = re.compile(r"^(?:option|choice)\s*[:.)\-]?\s*([a-d])\s*[.)]?$", re.IGNORECASE)


def normalize_answer(value: Any) -> str:
    """
    Trim, case-fold and collapse internal whitespace runs.

    Total: ``None`` becomes the empty string, anything else is ``str()``-ed.
    """
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip().casefold()


def normalize_choice(value: Any, options: Optional[Mapping[str, str]] = None) -> str:
    """
    Map a multiple-choice answer onto the "A".."D" key space.

    Accepts "b", "B)", "Option B", "choice: b" and, when ``options`` is given,
    the full text of an option. Anything unresolvable is returned as its plain
    normalized form, which never equals a key.
    """
    text = normalize_answer(value)
    if not text:
        return ""

    bare = text.rstrip(".)").strip()
    if len(bare) == 1 and bare.upper() in CHOICE_KEYS:
        return bare.upper()

    match = _OPTION_PREFIX.match(text)
    if match:
        return match.group(1).upper()

    if options:
        for key, option_text in options.items():
            if normalize_answer(option_text) == text and str(key).upper() in CHOICE_KEYS:
                return str(key).upper()

    return text
