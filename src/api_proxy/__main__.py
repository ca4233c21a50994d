"""Entry point for ``python -m api_proxy``."""

import sys

from .cli import main

sys.exit(main())
