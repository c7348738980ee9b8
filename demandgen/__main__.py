"""Entry point for ``python -m demandgen``."""

from demandgen.cli import main

if __name__ == "__main__":
    main()
