import string

# Digits, then lowercase, then uppercase: value 0 -> "0", 61 -> "Z"
BASE62_ALPHABET = string.digits + string.ascii_lowercase + string.ascii_uppercase
BASE = len(BASE62_ALPHABET)

_INDEX = {char: value for value, char in enumerate(BASE62_ALPHABET)}


def encode_base62(number: int) -> str:
    """Encode a non-negative integer, most significant symbol first."""
    if number < 0:
        raise ValueError(f"cannot encode negative number {number}")
    if number == 0:
        return BASE62_ALPHABET[0]

    symbols = []
    while number > 0:
        number, remainder = divmod(number, BASE)
        symbols.append(BASE62_ALPHABET[remainder])
    return "".join(reversed(symbols))


def decode_base62(code: str) -> int:
    if not code:
        raise ValueError("cannot decode an empty code")
    number = 0
    for char in code:
        try:
            number = number * BASE + _INDEX[char]
        except KeyError:
            raise ValueError(f"{char!r} is not a base-62 symbol") from None
    return number


def is_base62(code: str) -> bool:
    return bool(code) and all(char in _INDEX for char in code)
