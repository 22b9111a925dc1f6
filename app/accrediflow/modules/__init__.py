"""
Feature modules live under this package.

Each module owns its routes and models while reusing platform primitives
(auth, role gate, audit, storage, DB session).
"""
