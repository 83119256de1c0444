from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence, Tuple

from fsrskit.core import ValidationError
from fsrskit.fsrs_defaults import resolve_parameters


def load_parameters(path: str | Path, key: str = "parameters") -> Tuple[float, ...]:
    """
    Load a 21-value parameter vector stored under `key` in a JSON file.

    A bare JSON list is accepted as well.
    """
    path = Path(path)
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, Sequence) or isinstance(data, str):
        raise ValidationError(f"{path} missing '{key}' sequence.")
    try:
        return resolve_parameters(data)
    except ValidationError as exc:
        raise ValidationError(f"{path}: {exc}") from None


def save_parameters(
    path: str | Path, params: Sequence[float], *, key: str = "parameters"
) -> Path:
    path = Path(path)
    vector = resolve_parameters(params)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump({key: list(vector)}, fh, indent=2)
        fh.write("\n")
    return path


def _read_json(path: Path):
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{path} is not valid JSON: {exc.msg}.") from None


__all__ = ["load_parameters", "save_parameters"]
