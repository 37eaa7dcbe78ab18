"""Allow ``python -m espace_scan``."""

from espace_scan.main import main

if __name__ == "__main__":
    main()
