# pm_scheduler/cli/__main__.py
from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import select

from pm_scheduler.auth import Principal
from pm_scheduler.cli.seed_demo import seed_demo
from pm_scheduler.db import SessionLocal
from pm_scheduler.models import Organization
from pm_scheduler.services.backlog import scan_backlog


def _cmd_seed_demo(args: argparse.Namespace) -> int:
    out = seed_demo(
        org_slug=args.org_slug,
        org_name=args.org_name,
        user_email=args.user_email,
        user_name=args.user_name,
    )
    print(json.dumps({"ok": True, "org_slug": out.org_slug, "user_email": out.user_email, "client_ids": out.client_ids}))
    return 0


def _cmd_backlog(args: argparse.Namespace) -> int:
    today = date.fromisoformat(args.today) if args.today else None
    db = SessionLocal()
    try:
        org = db.scalar(select(Organization).where(Organization.slug == args.org_slug))
        if org is None:
            print(json.dumps({"ok": False, "error": f"unknown org: {args.org_slug}"}), file=sys.stderr)
            return 2
        # read-only scan; no user behind a CLI run
        p = Principal(org_id=int(org.id), org_slug=str(org.slug), user_id=0, email="", role="analyst")
        print(json.dumps(scan_backlog(db, p, today=today).as_dict(), indent=2))
        return 0
    finally:
        db.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m pm_scheduler.cli")
    sub = parser.add_subparsers(dest="command", required=True)

    s = sub.add_parser("seed-demo", help="create a demo org, user and clients")
    s.add_argument("--org-slug", default="demo")
    s.add_argument("--org-name", default="Demo Mechanical")
    s.add_argument("--user-email", default="dispatch@demo.local")
    s.add_argument("--user-name", default="Dispatch")
    s.set_defaults(func=_cmd_seed_demo)

    b = sub.add_parser("backlog", help="print the 3-month backlog scan as JSON")
    b.add_argument("--org-slug", required=True)
    b.add_argument("--today", default=None, help="YYYY-MM-DD, defaults to the current date")
    b.set_defaults(func=_cmd_backlog)

    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
