"""Allow running the daemon with ``python -m shellwatch``."""

import sys

from .cli import main

sys.exit(main())
