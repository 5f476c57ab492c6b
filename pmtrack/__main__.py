"""Allow ``python -m pmtrack``."""

from .cli import main

if __name__ == "__main__":
    main()
