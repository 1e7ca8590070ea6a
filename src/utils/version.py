"""Build metadata helpers shown in the startup banner and the OpenAPI schema."""

from pathlib import Path

import tomlkit

__all__ = ["get_git_hash", "get_pyproject_version"]

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def get_pyproject_version(root: Path = PROJECT_ROOT) -> str:
    """Get AnimeMatcher's version from the pyproject.toml file.

    Args:
        root (Path): Directory holding ``pyproject.toml``.

    Returns:
        str: AnimeMatcher's version, or ``unknown`` outside a source checkout
    """
    toml_file = root / "pyproject.toml"
    if not toml_file.is_file():
        return "unknown"

    with toml_file.open(encoding="utf-8") as f:
        toml_data = tomlkit.load(f)
    project = toml_data.get("project", {})
    return str(project.get("version", "unknown"))


def get_git_hash(root: Path = PROJECT_ROOT) -> str:
    """Get the commit hash of the checked out branch.

    Args:
        root (Path): Repository root holding the ``.git`` directory.

    Returns:
        str: The current commit hash, or ``unknown`` when it cannot be resolved
    """
    git_dir = root / ".git"
    try:
        head = (git_dir / "HEAD").read_text(encoding="utf-8").strip()
    except OSError:
        return "unknown"

    if not head.startswith("ref: refs/heads/"):
        # Detached HEAD stores the hash directly
        return head or "unknown"

    ref_path = git_dir / head.removeprefix("ref: ")
    try:
        return ref_path.read_text(encoding="utf-8").strip()
    except OSError:
        return "unknown"
