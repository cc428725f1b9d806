"""Allow ``python -m veg_monitor``."""

from .cli import main

raise SystemExit(main())
