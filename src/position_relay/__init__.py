"""Position Relay - telemetry feed to realtime store synchronizer."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("position-relay")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from position_relay.app import main
from position_relay.engine import RelayContext, run_cycle

# NOTE: Update this list when adding new exports to this module.
__all__ = [
    "__version__",
    "RelayContext",
    "main",
    "run_cycle",
]
