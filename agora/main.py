import argparse
import getpass
import sys
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime
from typing import List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .auth import get_session
from .errors import AgoraError, AuthError, NetworkError, NotFoundError, ValidationError

console = Console()
err_console = Console(stderr=True)


def format_time_ago(dt: Optional[datetime]) -> str:
    """Format datetime as 'time ago' string."""
    if dt is None:
        return ""
    now = datetime.now(dt.tzinfo) if dt.tzinfo else datetime.now()
    diff = now - dt
    if diff.days > 0:
        return f"{diff.days}d ago"
    if diff.seconds < 60:
        return "just now"
    if diff.seconds < 3600:
        return f"{diff.seconds // 60}m ago"
    return f"{diff.seconds // 3600}h ago"


# ───────── commands ─────────
def cmd_login(args) -> int:
    password = args.password or getpass.getpass("Password: ")
    user = get_session().sign_in(args.email, password)
    console.print(Text(f"Signed in as {user.display_name}", style="green"))
    return 0


def cmd_logout(args) -> int:
    get_session().sign_out()
    console.print("Signed out.")
    return 0


def cmd_whoami(args) -> int:
    session = get_session()
    user = session.current_user()
    try:
        session.wait_for_revalidation(timeout=session.api.timeout + 1)
    except FuturesTimeoutError:
        err_console.print(Text("Could not confirm the session in time; showing cached user.", style="yellow"))
    user = session.current_user(revalidate=False) if user else None
    if user is None:
        console.print("Not signed in.")
        return 1
    console.print(Text(f"{user.display_name} <{user.email}> [{user.role}]"))
    return 0


def cmd_categories(args) -> int:
    table = Table(title="Categories")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Threads", justify="right")
    table.add_column("Posts", justify="right")
    for c in get_session().api.get_categories():
        table.add_row(c.id, c.name, str(c.thread_count), str(c.post_count))
        for sub in c.subcategories:
            table.add_row(sub.id, f"  └ {sub.name}", str(sub.thread_count), str(sub.post_count))
    console.print(table)
    return 0


def cmd_threads(args) -> int:
    threads = get_session().api.get_threads(args.category)
    if not threads:
        console.print("No threads yet.")
        return 0
    table = Table(title="Threads")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Author")
    table.add_column("Replies", justify="right")
    table.add_column("Views", justify="right")
    for t in threads:
        title = ("📌 " if t.is_pinned else "") + ("🔒 " if t.is_locked else "") + t.title
        author = t.author.display_name if t.author else ""
        table.add_row(t.id, title, author, str(t.post_count), str(t.view_count))
    console.print(table)
    return 0


def cmd_thread(args) -> int:
    api = get_session().api
    thread = api.get_thread(args.id)
    console.print(Text(thread.title, style="bold"))
    if thread.author:
        console.print(Text(f"by {thread.author.display_name} · {format_time_ago(thread.created_at)}", style="dim"))
    console.print(thread.content)
    for p in api.get_posts(thread.id):
        author = p.author.display_name if p.author else "unknown"
        console.print(Text(f"─ {author} · {format_time_ago(p.created_at)}", style="cyan"))
        console.print(p.content)
    return 0


def cmd_listings(args) -> int:
    listings = get_session().api.get_listings(search=args.search, category=args.category)
    table = Table(title="Marketplace")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Price", justify="right")
    table.add_column("Condition")
    table.add_column("Status")
    for item in listings:
        table.add_row(item.id, item.title, f"{item.price:.2f}", item.condition or "", item.status)
    console.print(table)
    return 0


def cmd_notifications(args) -> int:
    api = get_session().api
    notifications = api.get_notifications(unread_only=args.unread)
    console.print(Text(f"{api.get_unread_count()} unread", style="bold"))
    for n in notifications:
        marker = " " if n.read else "•"
        console.print(f"{marker} [{n.type}] {n.message} ({format_time_ago(n.created_at)})")
    return 0


def cmd_search(args) -> int:
    results = get_session().api.search(args.query, type=args.type)
    if not results:
        console.print(f"No results for {args.query!r}.")
        return 0
    for r in results:
        console.print(Text(f"[{r.type}] {r.title or r.content[:60]}", style="bold"))
        for fragment in r.highlights:
            console.print(Text(f"  … {fragment} …", style="dim"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agora", description="Community forum client")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="sign in with email and password")
    p.add_argument("email")
    p.add_argument("--password")
    p.set_defaults(func=cmd_login)

    sub.add_parser("logout", help="sign out and forget stored credentials").set_defaults(func=cmd_logout)
    sub.add_parser("whoami", help="show the signed-in user").set_defaults(func=cmd_whoami)
    sub.add_parser("categories", help="list forum categories").set_defaults(func=cmd_categories)

    p = sub.add_parser("threads", help="list threads")
    p.add_argument("--category", help="category id")
    p.set_defaults(func=cmd_threads)

    p = sub.add_parser("thread", help="show a thread and its replies")
    p.add_argument("id")
    p.set_defaults(func=cmd_thread)

    p = sub.add_parser("listings", help="browse marketplace listings")
    p.add_argument("--search")
    p.add_argument("--category")
    p.set_defaults(func=cmd_listings)

    p = sub.add_parser("notifications", help="show notifications")
    p.add_argument("--unread", action="store_true")
    p.set_defaults(func=cmd_notifications)

    p = sub.add_parser("search", help="search threads, posts, users and listings")
    p.add_argument("query")
    p.add_argument("--type", choices=["thread", "post", "user", "listing"])
    p.set_defaults(func=cmd_search)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ValidationError as e:
        err_console.print(Text(e.message, style="yellow"))
        return 2
    except NotFoundError as e:
        err_console.print(Text(f"{e.message}. Go back and pick another item.", style="red"))
        return 1
    except NetworkError as e:
        err_console.print(Text(f"{e.message}. Please try again.", style="red"))
        return 3
    except AuthError as e:
        err_console.print(Text(f"{e.message}. Run `agora login` to sign in.", style="red"))
        return 4
    except AgoraError as e:
        err_console.print(Text(e.message, style="red"))
        return 1


if __name__ == "__main__":
    sys.exit(main())
