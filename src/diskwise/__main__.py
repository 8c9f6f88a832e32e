"""Allow ``python -m diskwise``."""

from diskwise.cli import app

app()
