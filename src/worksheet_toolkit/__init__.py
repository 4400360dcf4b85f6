"""Top-level package for the Worksheet Toolkit.

Provides subpackages:
- worksheet_toolkit.placement – level recommendation, student selection, form assignment
- worksheet_toolkit.generation – question-set cache and diagram resolution
- worksheet_toolkit.builder – paginated layout and PDF/DOCX output
- worksheet_toolkit.diagnostics – score aggregation and result recording
- worksheet_toolkit.presets – saved generation settings
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
                    # Parse: version = "0.3.1"
                    return line.split("=")[1].strip().strip('"').strip("'")
        except OSError:
            pass

    try:
        from importlib.metadata import version as pkg_version
        return pkg_version("worksheet_toolkit")
    except Exception:
        return "0.0.0"

__version__ = _get_version()
__all__: list[str] = ["__version__"]
