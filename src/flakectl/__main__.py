"""Allow ``python -m flakectl``."""
from __future__ import annotations

from .cli import main

main()
