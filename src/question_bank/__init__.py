"""Top-level package for the Question Bank console.

Provides subpackages:
- question_bank.core – question record model
- question_bank.worksheet – worksheet PDF generator
- question_bank.gui – desktop progress dialog for worksheet runs

and modules:
- question_bank.store – remote question table client
- question_bank.importer – bulk CSV import
- question_bank.taxonomy – subject/level/title lists
- question_bank.cli – `question-bank` command line
"""

def _get_version() -> str:
    """Get version from pyproject.toml (dev) or importlib.metadata (installed)."""
    from pathlib import Path

    pyproject = Path(__file__).resolve().parent.parent.parent / "pyproject.toml"
    if pyproject.exists():
        try:
            content = pyproject.read_text()
            for line in content.splitlines():
                if line.strip().startswith("version"):
                    # Parse: version = "0.3.0"
                    return line.split("=")[1].strip().strip('"').strip("'")
        except OSError:
            pass

    # Fallback to importlib.metadata for installed package
    try:
        from importlib.metadata import version as pkg_version
        return pkg_version("question-bank")
    except Exception:
        return "0.0.0"

__version__ = _get_version()
__all__: list[str] = ["__version__"]
