"""Allow ``python -m unionlint``."""

import sys

from unionlint.main import main

if __name__ == "__main__":
    sys.exit(main())
