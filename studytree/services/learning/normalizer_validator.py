import re
from typing import Any


VALID_DIFFICULTIES = ("easy", "medium", "hard")


def as_non_empty_str(value: Any, fallback: str = "") -> str:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return fallback


def safe_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def clean_string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    cleaned: list[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        text = item.strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def normalize_difficulty(value: Any) -> str:
    text = str(value or "").strip().lower()
    aliases = {"쉬움": "easy", "보통": "medium", "normal": "medium", "어려움": "hard"}
    text = aliases.get(text, text)
    if text in VALID_DIFFICULTIES:
        return text
    return "medium"


def normalize_option_text(value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        return ""

    labeled = re.match(r"^(?:선택지|보기|옵션|option)\s*[0-9A-Da-d]+(?:\s*[:.)-]\s*|\s+)(.+)$", text, re.IGNORECASE)
    if labeled:
        return str(labeled.group(1)).strip()

    numbered = re.match(r"^\s*(?:\(?[1-9]\)?[.)-]|[A-Da-d][.)-]|[①②③④⑤])\s*(.+)$", text)
    if numbered:
        return str(numbered.group(1)).strip()

    return text


def is_placeholder_option(text: str) -> bool:
    lowered = str(text or "").strip().lower()
    if not lowered:
        return True
    if re.fullmatch(r"\d+", lowered):
        return True
    if re.fullmatch(r"[a-d]", lowered):
        return True
    if re.fullmatch(r"\d+\s*번", lowered):
        return True
    if re.fullmatch(r"(?:선택지|보기|옵션|option)\s*[0-9a-d]+", lowered, re.IGNORECASE):
        return True
    return False


def normalize_options(value: Any, max_options: int = 5) -> list[str]:
    options = value if isinstance(value, list) else []
    normalized: list[str] = []
    for option in options:
        candidate = normalize_option_text(option)
        if not candidate or is_placeholder_option(candidate):
            continue
        if candidate not in normalized:
            normalized.append(candidate)
        if len(normalized) >= max_options:
            break
    return normalized
