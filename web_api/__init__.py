"""
HTTP layer for FlowForge auth.

The app is built by web_api.app.create_app(); nothing is created at import
time so tests can point each app at its own data directory.
"""
