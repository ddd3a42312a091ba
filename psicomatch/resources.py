from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_QUESTIONNAIRES = BASE_DIR / "data" / "matching_tests.json"


@lru_cache(maxsize=4)
def load_questionnaires(path: Path = DEFAULT_QUESTIONNAIRES) -> List[Dict[str, Any]]:
    with Path(path).open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    return data["tests"]
