# src/services/ids.py
import secrets
import string
from uuid import uuid4

# URL-safe alphabet without look-alike characters (0/O, 1/l/I)
_SHARE_ID_ALPHABET = "".join(
    c for c in string.ascii_letters + string.digits if c not in "0O1lI"
)
SHARE_ID_LENGTH = 8


def generate_share_id(length: int = SHARE_ID_LENGTH) -> str:
    """Id curto usado também na URL pública (ex.: coleções)."""
    return "".join(secrets.choice(_SHARE_ID_ALPHABET) for _ in range(length))


def generate_recipe_id() -> str:
    return str(uuid4())
