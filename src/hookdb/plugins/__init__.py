"""
Plugin system for hookdb.

Plugins subclass ``Plugin`` and declare interception hooks with
``@intercepts``.
"""

from hookdb.plugins.base import Plugin, PluginCapabilities, collect_capabilities
from hookdb.plugins.decorators import intercepts
from hookdb.plugins.metrics import MetricsPlugin
from hookdb.plugins.registry import PluginRegistry
from hookdb.plugins.soft_delete import SoftDeletePlugin

__all__ = [
    "MetricsPlugin",
    "Plugin",
    "PluginCapabilities",
    "PluginRegistry",
    "SoftDeletePlugin",
    "collect_capabilities",
    "intercepts",
]
