"""
Shared infrastructure: configuration, database access and the plugin
migration machinery.
"""
