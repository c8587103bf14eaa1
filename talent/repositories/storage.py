"""Fixed storage keys and id generation shared by all repositories."""
import os
import random
import string

STORAGE_KEYS = {
    'business_analysts': 'tt_business_analysts',
    'talent_rounds': 'tt_talent_rounds',
    'reviews': 'tt_reviews',
    'app_config': 'tt_app_config',
}

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_LENGTH = 9


def storage_path(data_dir: str, key: str) -> str:
    """Return the JSON file path backing storage *key* inside *data_dir*."""
    return os.path.join(data_dir, f'{key}.json')


def generate_id() -> str:
    """Return a short random base-36 identifier (9 characters)."""
    return ''.join(random.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))
