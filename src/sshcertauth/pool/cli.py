"""
Pool inspection CLI - prints the live pool account mapping table.
"""

import argparse
import logging
import sys
import time
from datetime import datetime, timezone

from rich import box
from rich.console import Console
from rich.table import Table

from ..config import CertAuthConfig
from ..errors import CertAuthError
from .allocator import PoolAllocator

console = Console()


def build_table(allocator: PoolAllocator, user_format: str, now: int) -> Table:
    """Render live entries as a rich table."""
    table = Table(
        title=f"Pool accounts {allocator.id_low}-{allocator.id_high}",
        box=box.SIMPLE_HEAVY,
    )
    table.add_column("Slot", justify="right", style="cyan")
    table.add_column("User", style="bold")
    table.add_column("Identity")
    table.add_column("Assigned (UTC)")
    table.add_column("Expires in", justify="right")

    for entry in allocator.entries(now):
        assigned = datetime.fromtimestamp(entry.assigned_at, tz=timezone.utc)
        remaining = allocator.validity_seconds - (now - entry.assigned_at)
        table.add_row(
            str(entry.slot_id),
            user_format % entry.slot_id,
            entry.identity,
            assigned.strftime("%Y-%m-%d %H:%M:%S"),
            f"{remaining}s",
        )

    return table


def main(argv=None) -> int:
    """Show the pool mapping table."""
    parser = argparse.ArgumentParser(description="Show sshcertauth pool account assignments")
    parser.add_argument(
        "--map-file",
        type=str,
        default=None,
        help="Mapping table file (default: SSHCERTAUTH_MAP_FILE)"
    )
    parser.add_argument(
        "--lock-timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for the table lock (default: 10)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    config = CertAuthConfig.from_env()
    if args.map_file:
        config.map_file = args.map_file
    config.lock_timeout = args.lock_timeout

    try:
        config.validate()
        allocator = PoolAllocator.from_config(config)
        now = int(time.time())
        console.print(build_table(allocator, config.user_format, now))
        status = allocator.get_status(now)
    except CertAuthError as e:
        console.print(f"[bold red]{e.kind}:[/bold red] {e}")
        return 1

    console.print(
        f"[green]{status['available']}[/green] of {status['capacity']} pool accounts available"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
