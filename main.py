"""Main Entry Point for the order board (command line)."""

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from dotenv import load_dotenv

from config.settings import get_settings
from models.view import Board, SearchState, SortState, ViewState
from services.dashboard import DashboardSession


def parse_cli_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments for a one-shot board print."""
    parser = argparse.ArgumentParser(description="Print order board stats and columns")
    parser.add_argument(
        "--show-completed",
        action="store_true",
        help="Include the Completed column",
    )
    parser.add_argument(
        "--sort-by",
        choices=["agent", "date", "time", "ticket"],
        default="ticket",
        help="Sort option (default: ticket)",
    )
    parser.add_argument(
        "--desc",
        action="store_true",
        help="Reverse the sort direction",
    )
    parser.add_argument(
        "--search",
        default="",
        help="Search term",
    )
    parser.add_argument(
        "--search-field",
        choices=["customer", "agent", "ticket"],
        default="customer",
        help="Field the search term applies to",
    )
    parser.add_argument("--agent", default=None, help="Only orders of this agent")
    parser.add_argument("--department", default=None, help="Only orders of this department")
    return parser.parse_args(argv)


def format_board(board: Board) -> list[str]:
    lines = []
    for column in board.columns:
        lines.append(f"[{column.title}] ({column.count})")
        for order in column.orders:
            assignee = order.assigned_to or "-"
            done = sum(1 for task in order.tasks if task.completed)
            lines.append(
                f"  {order.ticket_number:<12} {order.customer_name:<24} "
                f"{order.priority:<6} {assignee:<16} {done}/{len(order.tasks)}"
            )
    lines.append(f"Completed orders in view: {board.completed_count}")
    return lines


async def show_board(args: argparse.Namespace) -> int:
    view = ViewState(
        search=SearchState(term=args.search, field=args.search_field),
        sort=SortState(sort_by=args.sort_by, direction="desc" if args.desc else "asc"),
        show_completed=args.show_completed,
    )

    async with DashboardSession(settings=get_settings()) as session:
        if session.degraded:
            print(f"Remote store unavailable, showing local data ({session.last_error})")

        stats = session.stats
        print(
            f"Total: {stats.total_orders}  Completed: {stats.completed_orders}  "
            f"Pending: {stats.pending_orders}"
        )
        print()
        if args.agent or args.department:
            board = session.scoped_board(view, agent=args.agent, department=args.department)
        else:
            board = session.board(view)
        for line in format_board(board):
            print(line)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = parse_cli_args(argv)
    logging.basicConfig(level=get_settings().log_level)
    return asyncio.run(show_board(args))


if __name__ == "__main__":
    raise SystemExit(main())
