"""Category string sanitizing.

Categories are free text; ':' may be used to separate hierarchy terms. Every
category is sanitized before it is stored so that rules and ledger rows agree on
spelling:

- "homeAndGarden"       -> "HomeAndGarden"
- "Home    and Garden"  -> "Home And Garden"
- "Home :Garden"        -> "Home:Garden"
- "Home: "              -> "Home"
- "  "                  -> ""
"""

import re

_MULTIPLE_SPACES = re.compile(r"\s{2,}")


def _capitalize_words(text: str) -> str:
    # Only the first letter changes; the rest of each word keeps its casing.
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


def sanitize_category(category: str | None) -> str:
    if category is None or not category.strip():
        return ""

    terms = []
    for term in category.split(":"):
        trimmed = term.strip()
        if not trimmed:
            continue
        terms.append(_capitalize_words(_MULTIPLE_SPACES.sub(" ", trimmed)))

    return ":".join(terms)
