"""Entry point for running the Courier delivery worker as a module.

Usage:
    python -m courier
"""

from .runner import main

if __name__ == "__main__":
    main()
