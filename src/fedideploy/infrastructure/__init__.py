"""Infrastructure layer — compose driver, federation HTTP client, secrets, workspace files.

This layer depends on stdlib and third-party libs (httpx, cryptography, Jinja2,
ruamel.yaml). It may read domain models but never imports services, commands,
or output.
"""
