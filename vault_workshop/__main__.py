"""Allow ``python -m vault_workshop``."""
import sys

from .cli import main

sys.exit(main())
