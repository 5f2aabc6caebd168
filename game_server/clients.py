from functools import lru_cache
from typing import Any

from googleapiclient.discovery import build

# Shared client registry (lazy-loaded and cached for the process lifetime)


@lru_cache(maxsize=1)
def get_compute() -> Any:
    return build("compute", "v1", cache_discovery=False)
