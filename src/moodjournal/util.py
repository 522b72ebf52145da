import time
from pathlib import Path


def _repo_root() -> Path:
    module_path = Path(__file__).resolve()
    # util.py lives under src/moodjournal/, so the repository root is two levels up.
    return module_path.parents[2]


def now_ms() -> int:
    """Return the current wall-clock time in milliseconds since the epoch."""

    return int(time.time() * 1000)


def resolve_data_path(
    configured_path: str,
    *,
    fallback_dir: str | Path,
    fallback_name: str | None = None,
) -> Path:
    """Resolve a configurable data path with sensible fallbacks.

    The resolution order is:
    1. Absolute path as provided.
    2. Relative to the current working directory.
    3. Relative to the repository root (for tools that change CWD).
    4. The packaged fallback directory, using the provided ``fallback_name`` or the original
       filename when the path cannot be located elsewhere.
    """

    candidate = Path(configured_path)
    fallback_dir_path = Path(fallback_dir).resolve()
    repo_root = _repo_root()

    search_paths: list[Path] = []

    if candidate.is_absolute():
        search_paths.append(candidate)
    else:
        search_paths.extend(
            [
                Path.cwd() / candidate,
                repo_root / candidate,
            ]
        )

    resolved_fallback_name = fallback_name or candidate.name
    if resolved_fallback_name:
        search_paths.append(fallback_dir_path / resolved_fallback_name)

    tried: list[Path] = []
    seen: set[Path] = set()

    for path in search_paths:
        normalized = path.resolve()
        if normalized in seen:
            continue
        seen.add(normalized)
        tried.append(normalized)
        if normalized.exists():
            return normalized

    raise FileNotFoundError(
        f"Unable to locate '{configured_path}'. Checked: {', '.join(str(p) for p in tried)}"
    )
