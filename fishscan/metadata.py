from __future__ import annotations

from pathlib import Path
from typing import Dict, Tuple, Union


def load_class_names(metadata_path: Union[str, Path]) -> Tuple[str, ...]:
    """
    Load the ordered class-label table from a lightweight `names:` metadata file.

    The format is the one YOLO exports write next to the weights:

        names:
          0: Bacterial Aeromonas Disease
          1: Healthy-Fish
          ...

    Ids must be contiguous from 0 since detections index into the table by
    class id. This function intentionally avoids adding a PyYAML dependency.
    """

    path = Path(metadata_path)
    if not path.exists():
        raise FileNotFoundError(f"Class metadata not found: {path}")

    names: Dict[int, str] = {}
    in_names = False

    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue

            # Parse "id: label"
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                # Next top-level key ends the names block.
                if not raw[:1].isspace():
                    break
                continue
            names[int(left)] = right

    if not names:
        raise ValueError(f"No class names found in {path}")
    expected = list(range(len(names)))
    if sorted(names) != expected:
        raise ValueError(f"Class ids in {path} must be contiguous from 0, got {sorted(names)}")
    return tuple(names[i] for i in expected)
