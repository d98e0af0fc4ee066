from __future__ import annotations

from typing import Dict, Tuple

# (rows, cols, num_mines)
DIFFICULTIES: Dict[str, Tuple[int, int, int]] = {
    "easy": (9, 9, 10),
    "medium": (16, 16, 40),
    "hard": (24, 24, 99),
}


def resolve_difficulty(name: str) -> Tuple[int, int, int]:
    key = (name or "").strip().lower()
    if key not in DIFFICULTIES:
        raise ValueError("unknown_difficulty")
    return DIFFICULTIES[key]
