import sys

from proxycache._cli import main

if __name__ == "__main__":
    sys.exit(main())
