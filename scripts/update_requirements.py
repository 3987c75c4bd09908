"""Generate requirements files from pyproject.toml."""

from __future__ import annotations

import sys
from pathlib import Path
import tomllib

_HEADER = "# Auto-generated from pyproject.toml via scripts/update_requirements.py"


def _load_pyproject(path: Path) -> dict:
    return tomllib.loads(path.read_text(encoding="utf-8"))


def _render_requirements(deps: list[str]) -> str:
    lines = [_HEADER, ""]
    lines.extend(sorted(deps, key=str.lower))
    lines.append("")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    check_only = "--check" in args
    root = Path(__file__).resolve().parents[1]
    project = _load_pyproject(root / "pyproject.toml").get("project", {})
    deps = project.get("dependencies", [])
    test_deps = project.get("optional-dependencies", {}).get("test", [])

    targets = {
        root / "requirements.txt": _render_requirements(deps),
        root / "requirements-dev.txt": _render_requirements(deps + test_deps),
    }
    stale = []
    for path, content in targets.items():
        current = path.read_text(encoding="utf-8") if path.exists() else None
        if current == content:
            continue
        if check_only:
            stale.append(path.name)
            continue
        path.write_text(content, encoding="utf-8")
    if stale:
        print(f"Out of date: {', '.join(stale)}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
