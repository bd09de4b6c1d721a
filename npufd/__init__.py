"""Rebellions NPU feature discovery for node-feature-discovery."""

__version__ = "0.1.0"
