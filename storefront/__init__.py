"""Client-side core of the Trillion digital store: cart, catalog, session and checkout."""

__version__ = "1.0.0"
