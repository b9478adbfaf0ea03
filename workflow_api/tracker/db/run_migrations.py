"""
Programmatic Alembic migration runner.

Runs migrations without an alembic.ini by pointing the script location at this
package's migrations directory.

Usage examples:
    python -m tracker.db.run_migrations upgrade head
    python -m tracker.db.run_migrations downgrade -1
    python -m tracker.db.run_migrations current
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Sequence

from alembic import command
from alembic.config import Config

from tracker.db.config import get_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def _alembic_config() -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # Offline mode reads this URL; env.py builds its own async engine when online.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


def _show(cfg: Config, *args: str) -> None:
    if not args:
        raise ValueError("Usage: show <revision>")
    command.show(cfg, args[0])


_COMMANDS: Dict[str, Callable[..., None]] = {
    "upgrade": lambda cfg, *a: command.upgrade(cfg, *(a or ("head",))),
    "downgrade": lambda cfg, *a: command.downgrade(cfg, *(a or ("-1",))),
    "current": command.current,
    "history": command.history,
    "heads": command.heads,
    "show": _show,
}


# PUBLIC_INTERFACE
def run_alembic(args: Sequence[str]) -> None:
    """
    Run one Alembic command, e.g. ``run_alembic(["upgrade", "head"])``.

    Raises ValueError for an empty or unsupported command.
    """
    if not args:
        raise ValueError("No Alembic arguments provided. Example: upgrade head")
    cmd, *rest = list(args)
    handler = _COMMANDS.get(cmd)
    if handler is None:
        raise ValueError(f"Unsupported Alembic command: {cmd}")
    logger.info("alembic %s %s", cmd, " ".join(rest))
    handler(_alembic_config(), *rest)


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Command line entrypoint."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        run_alembic(args)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
