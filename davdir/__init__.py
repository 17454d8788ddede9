"""WebDAV principal directory package.

To use the directory from Python:
    from davdir.core import PrincipalStore, DigestCredentials

To use the HTTP API:
    from davdir.flask_app import create_app
"""
# Note: flask_app is not imported here so the core library and the CLI
# can be used without Flask
