from __future__ import annotations

import sys

from cloud_assembly.cli import main


if __name__ == "__main__":
    sys.exit(main())
