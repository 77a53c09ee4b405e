"""Allow running Ezzi with ``python -m ezzi``."""

import sys


def main() -> int:
    from ezzi.src.main import main as app_main
    return app_main()


if __name__ == "__main__":
    sys.exit(main())
