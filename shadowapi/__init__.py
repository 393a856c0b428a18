"""Shadow API Visualizer: passive discovery of undocumented API endpoints."""

__version__ = "0.1.0"
