"""Entry point for ``python -m qcforms`` and the ``qcforms`` console script."""

from __future__ import annotations

import sys

from qcforms.main import main

__all__ = ["main"]

if __name__ == "__main__":
    sys.exit(main())
