"""
HTTP clients for plugins, the template repository and the registries.
"""
