"""
Version information for the OpenTSDB datasource.

The package version is read from the installed distribution metadata, with
pyproject.toml as the fallback for source checkouts.
"""

try:
    from importlib.metadata import version

    __version__ = version("opentsdb-datasource")
except Exception:
    # Not installed: read pyproject.toml directly
    import tomllib
    from pathlib import Path

    try:
        pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            __version__ = tomllib.load(f)["project"]["version"]
    except Exception:
        __version__ = "0.0.0-dev"
