"""Security scanner for Ansible playbooks and other YAML infrastructure code."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("ansiblesec")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0-dev"

__all__ = ["__version__"]
