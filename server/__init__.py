"""Asset server bootstrap.

Importing this package has no side effects: settings are read, logging is
configured and the database is connected only when an entry point runs
(``server.main`` or ``server.asgi``).
"""

__version__ = "1.0.0"
