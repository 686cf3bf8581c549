import sys

from option_pricing.cli import main

if __name__ == "__main__":
    sys.exit(main())
