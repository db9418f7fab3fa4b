from __future__ import annotations

import sys
from pathlib import Path


def _ensure_on_syspath(path: Path) -> None:
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


# Some pytest import modes (and some Windows invocations) may not include the repo
# root on sys.path, causing imports like `import detect_kit` to fail. The tests
# directory is added for the shared `fakes` helpers.
_ensure_on_syspath(Path(__file__).resolve().parents[1])
_ensure_on_syspath(Path(__file__).resolve().parent)
