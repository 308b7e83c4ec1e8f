"""Allow running as ``python -m large_file_cleaner``."""

from .cli import main

if __name__ == "__main__":
    main()
