"""
trellis

Plugin lifecycle management for host applications.

Discovers plugin directories, keeps a persistent record of which plugins are
installed and active, applies and reverts per-plugin schema migrations in
batches, and drives the register/boot/unregister hooks of loaded plugins.

Example:
    from trellis.common.config import load_settings
    from trellis.common.database import Database
    from trellis.plugin import PluginManager

    settings = load_settings('trellis.yaml')
    manager = PluginManager(Database(settings.database_url), settings)
    manager.start()
    manager.install('ExtendedPlan')
"""

__version__ = "1.0.0"
