import re

PHONE_PATTERN = re.compile(r"^\+?[0-9]{10,15}$")


def check_phone(value: str) -> str:
    value = value.strip()
    if not PHONE_PATTERN.match(value):
        raise ValueError("Please enter valid phone no.")
    return value


def check_strong_password(value: str) -> str:
    if (
        len(value) < 6
        or not re.search(r"[a-z]", value)
        or not re.search(r"[A-Z]", value)
        or not re.search(r"[0-9]", value)
        or not re.search(r"[^A-Za-z0-9]", value)
    ):
        raise ValueError(
            "Password should be atleast 6 characters long and contain one uppercase "
            "letter, one lowercase letter, one digit and one special character"
        )
    return value
