"""
Entrypoint module, in case you use `python -mhmr`.
"""
import sys

from hmr.cli import main

if __name__ == "__main__":
    sys.exit(main())
