"""Allow ``python -m tokenkv``."""

from tokenkv.cli import main

main()
