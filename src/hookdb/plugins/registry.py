"""
Plugin registry: collects plugins from code, modules, files and entry points.
"""

import importlib
import importlib.util
import logging
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from hookdb.errors import PluginValidationError, ValidationErrorType
from hookdb.plugins.base import Plugin

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "hookdb.plugins"


def _plugin_classes(module: Any) -> List[type]:
    """Plugin subclasses defined in ``module`` itself, in definition order."""
    return [
        attr
        for attr in vars(module).values()
        if isinstance(attr, type)
        and issubclass(attr, Plugin)
        and attr is not Plugin
        and attr.__module__ == module.__name__
    ]


class PluginRegistry:
    """Ordered collection of plugins to hand to ``create_executor``.

    Registration order is preserved; the resolver uses it to break ties.
    """

    def __init__(self):
        self._plugins: Dict[str, Any] = {}

    @property
    def plugins(self) -> Tuple[Any, ...]:
        """Registered plugins in registration order."""
        return tuple(self._plugins.values())

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    def register(self, plugin: Union[Any, type]) -> Any:
        """Register a plugin instance or class.

        Raises:
            PluginValidationError: If a plugin with the same name is registered
        """
        # If it's a class, instantiate it
        if isinstance(plugin, type):
            plugin = plugin()

        plugin_name = plugin.name
        if plugin_name in self._plugins:
            raise PluginValidationError(
                f'Duplicate plugin: "{plugin_name}"',
                ValidationErrorType.DUPLICATE_NAME,
                plugin_name,
            )

        self._plugins[plugin_name] = plugin
        logger.info(f"Plugin {plugin_name} registered successfully")
        return plugin

    def unregister(self, plugin_name: str) -> None:
        """Remove a plugin. Unknown names are ignored."""
        if self._plugins.pop(plugin_name, None) is not None:
            logger.info(f"Plugin {plugin_name} unregistered")

    def get(self, name: str) -> Optional[Any]:
        """Get a plugin by name."""
        return self._plugins.get(name)

    def list_plugins(self) -> List[Dict[str, Any]]:
        """List all registered plugins with their metadata."""
        return [
            getattr(plugin, "metadata", None) or {"name": plugin.name, "version": plugin.version}
            for plugin in self._plugins.values()
        ]

    def _register_from(self, module: Any, source: str) -> Optional[Any]:
        # A module-level "plugin" instance wins over class discovery
        instance = getattr(module, "plugin", None)
        if instance is not None and hasattr(instance, "name"):
            return self.register(instance)

        classes = _plugin_classes(module)
        if not classes:
            logger.warning(f"No Plugin class found in {source}")
            return None
        return self.register(classes[0])

    def load_from_module(self, module_name: str) -> Optional[Any]:
        """Load a plugin from a module name.

        Import and construction failures are logged and skipped.

        Returns:
            The registered plugin, or None if nothing was loaded
        """
        try:
            module = importlib.import_module(module_name)
            return self._register_from(module, f"module {module_name}")
        except PluginValidationError:
            raise
        except ImportError as e:
            logger.error(f"Failed to import plugin module {module_name}: {e}")
        except Exception as e:
            logger.error(f"Failed to load plugin from {module_name}: {e}")
        return None

    def load_from_file(self, file_path: Path) -> Optional[Any]:
        """Load a plugin from a Python file."""
        try:
            spec = importlib.util.spec_from_file_location(f"hookdb_plugin_{file_path.stem}", file_path)
            if spec is None or spec.loader is None:
                logger.warning(f"Cannot load plugin file {file_path}")
                return None
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
            return self._register_from(module, f"file {file_path}")
        except PluginValidationError:
            raise
        except Exception as e:
            logger.error(f"Failed to load plugin from file {file_path}: {e}")
        return None

    def load_from_directory(self, plugins_dir: Path) -> List[Any]:
        """Load every ``*.py`` plugin file in a directory, sorted by name."""
        if not plugins_dir.exists():
            logger.info(f"Plugins directory {plugins_dir} does not exist")
            return []

        loaded = []
        for plugin_file in sorted(plugins_dir.glob("*.py")):
            if plugin_file.name == "__init__.py":
                continue
            plugin = self.load_from_file(plugin_file)
            if plugin is not None:
                loaded.append(plugin)
        return loaded

    def discover(self, plugins_dir: Optional[Path] = None) -> List[Any]:
        """Discover plugins via the ``hookdb.plugins`` entry point group.

        Args:
            plugins_dir: Also load plugin files from this directory

        Returns:
            Plugins registered by this call
        """
        loaded = []
        for entry_point in entry_points(group=ENTRY_POINT_GROUP):
            try:
                plugin = self.register(entry_point.load())
            except PluginValidationError:
                raise
            except Exception as e:
                logger.error(f"Failed to load plugin {entry_point.name}: {e}")
                continue
            loaded.append(plugin)

        if plugins_dir is not None:
            loaded.extend(self.load_from_directory(plugins_dir))
        return loaded
