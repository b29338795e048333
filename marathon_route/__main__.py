"""Allow ``python -m marathon_route``."""

from .main import main

raise SystemExit(main())
