"""Quire static site compiler.

Quire compiles page views, content items, data items and Jinja partials
into a static output tree, and in watch mode recompiles only the outputs
a changed file affects.

The main entry point is the CLI module, which provides the ``build`` and
``watch`` commands.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
