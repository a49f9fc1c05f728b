"""Allow running the CLI with python -m payroll_core."""

import sys

from payroll_core.cli import main

sys.exit(main())
