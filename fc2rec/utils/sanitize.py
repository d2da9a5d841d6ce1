import re
import string
import unicodedata

FORBIDDEN_CHARS = re.compile(r'[\\/:*?"<>|]')

RESERVED_NAMES = {
    "CON",
    "PRN",
    "AUX",
    "NUL",
    *(f"COM{i}" for i in range(1, 10)),
    *(f"LPT{i}" for i in range(1, 10)),
}


def is_graphic(c: str) -> bool:
    category = unicodedata.category(c)
    return category[0] in "LMNPS" or category == "Zs"


def is_reserved_name(name: str) -> bool:
    return name.split(".")[0].upper() in RESERVED_NAMES


def sanitize_filename(name: str) -> str:
    """Make a string usable as a single path component on every common filesystem."""
    name = FORBIDDEN_CHARS.sub("_", name)
    name = "".join(c for c in name if is_graphic(c))
    name = name.strip(string.whitespace + ".")
    if len(name) == 0:
        return "_"
    if is_reserved_name(name):
        name = "_" + name
    return name
