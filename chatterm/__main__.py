"""Allow ``python -m chatterm``."""

from chatterm.main import main

if __name__ == "__main__":
    main()
