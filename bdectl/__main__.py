"""Allow running as python -m bdectl."""

import sys

from bdectl.cli import main

sys.exit(main())
