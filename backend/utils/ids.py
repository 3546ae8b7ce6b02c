import secrets
import string
import time

_BASE36 = string.digits + string.ascii_uppercase


def _base36(value: int) -> str:
    out = ""
    while True:
        value, rem = divmod(value, 36)
        out = _BASE36[rem] + out
        if value == 0:
            return out


def generate_reference(prefix: str) -> str:
    """ORD-LZ3K8Q2A-7F3KQ1: millisecond clock in base36 plus a random tail."""
    tail = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}-{_base36(int(time.time() * 1000))}-{tail}"
