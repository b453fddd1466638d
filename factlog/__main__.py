"""
Allow running FactLog as a module: ``python -m factlog``.

This delegates to the CLI entry point so that both
``factlog`` (console script) and ``python -m factlog``
behave identically.
"""

from factlog.cli import main

if __name__ == "__main__":
    main()
