import secrets
import string

SYMBOLS = "!@#$%^&*"
TEMP_PASSWORD_LENGTH = 16


def generate_temp_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    """One-time Access Server password: at least one lower, upper, digit and symbol."""
    if length < 12:
        raise ValueError("Temporary passwords must be at least 12 characters")
    classes = [string.ascii_lowercase, string.ascii_uppercase, string.digits, SYMBOLS]
    alphabet = "".join(classes)
    chars = [secrets.choice(c) for c in classes]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
