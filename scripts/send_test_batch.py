#!/usr/bin/env python3
"""
Dev helper: send a batch through a running Resume Mailer backend.

Builds the multipart form the frontend would send, POST-s it to
/api/send-email and prints the JSON report. Successful recipients are
recorded in a local send-history file so the next run can warn about
(or skip) people this account has already mailed.

Usage
-----
# Send resume.pdf to two recipients from the account in MAILER_ACCOUNT
python scripts/send_test_batch.py --resume resume.pdf --to a@example.com,b@example.com

# Extra attachments
python scripts/send_test_batch.py --resume cv.pdf --attach cover.pdf --attach refs.pdf --to a@example.com

# Skip recipients already mailed from this account
python scripts/send_test_batch.py --resume cv.pdf --to-file recipients.txt --skip-sent

# Show what would be sent
python scripts/send_test_batch.py --resume cv.pdf --to a@example.com --dry-run

Environment / .env
------------------
MAILER_ACCOUNT        Sender address (or pass --account).
MAILER_APP_PASSWORD   App password for the sender (or pass --app-password).
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv

from app.services.recipient_parser import split_recipients
from app.services.send_history import JsonFileStore, SendHistory

DEFAULT_HISTORY_FILE = Path.home() / ".resume-mailer" / "history.json"


def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


def _read_recipients(args: argparse.Namespace) -> list[str]:
    raw = args.to or ""
    if args.to_file:
        raw = raw + "\n" + Path(args.to_file).read_text(encoding="utf-8")
    return split_recipients(raw)


def _file_part(path: Path) -> tuple[str, bytes]:
    return path.name, path.read_bytes()


def main() -> int:
    script_dir = Path(__file__).resolve().parent
    project_root = script_dir.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_batch.py",
        description=textwrap.dedent("""\
            Send a resume to a list of recipients through the backend.

            Reads MAILER_ACCOUNT and MAILER_APP_PASSWORD from the environment
            or a .env file in the project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", default="http://localhost:8000", help="Backend base URL")
    parser.add_argument("--account", default=os.getenv("MAILER_ACCOUNT"), help="Sender address")
    parser.add_argument("--app-password", default=os.getenv("MAILER_APP_PASSWORD"), help="Sender app password")
    parser.add_argument("--to", default=None, help="Comma-separated recipients")
    parser.add_argument("--to-file", default=None, metavar="PATH", help="File with one recipient per line")
    parser.add_argument("--subject", default="Application", help='Subject (default: "Application")')
    parser.add_argument("--body", default=None, help="Message body text")
    parser.add_argument("--body-file", default=None, metavar="PATH", help="Read the message body from a file")
    parser.add_argument("--resume", default=None, metavar="PATH", help="Resume file to attach")
    parser.add_argument("--attach", action="append", default=[], metavar="PATH", help="Extra attachment (repeatable)")
    parser.add_argument(
        "--history-file",
        default=str(DEFAULT_HISTORY_FILE),
        metavar="PATH",
        help=f"Local send-history file (default: {DEFAULT_HISTORY_FILE})",
    )
    parser.add_argument("--skip-sent", action="store_true", help="Drop recipients already mailed from this account")
    parser.add_argument("--dry-run", action="store_true", help="Print the request without sending it")

    args = parser.parse_args()

    if not args.account or not args.app_password:
        print(
            "ERROR: No sender credentials.\n"
            "Set MAILER_ACCOUNT / MAILER_APP_PASSWORD or pass --account / --app-password.",
            file=sys.stderr,
        )
        return 1

    recipients = _read_recipients(args)
    if not recipients:
        print("ERROR: No recipients. Pass --to or --to-file.", file=sys.stderr)
        return 1

    body = args.body
    if args.body_file:
        body = Path(args.body_file).read_text(encoding="utf-8")
    if not body:
        print("ERROR: No message body. Pass --body or --body-file.", file=sys.stderr)
        return 1

    attachment_paths = [Path(p) for p in args.attach]
    resume_path = Path(args.resume) if args.resume else None
    for path in ([resume_path] if resume_path else []) + attachment_paths:
        if not path.exists():
            print(f"ERROR: File not found: {path}", file=sys.stderr)
            return 1

    history = SendHistory(JsonFileStore(args.history_file))
    conflicts = history.find_conflicts(args.account, recipients)
    if conflicts:
        print(f"Already mailed from {args.account}:")
        for record in conflicts:
            print(f"  {record.recipient}  (last sent {record.last_sent.isoformat()})")
        if args.skip_sent:
            already = {r.recipient for r in conflicts}
            recipients = [r for r in recipients if r not in already]
            if not recipients:
                print("Nothing left to send.")
                return 0

    endpoint = f"{args.url.rstrip('/')}/api/send-email"
    print(f"\nEndpoint   : {endpoint}")
    print(f"From       : {args.account}")
    print(f"Recipients : {len(recipients)}")
    print(f"Subject    : {args.subject}")
    print(f"Resume     : {resume_path.name if resume_path else '(none)'}")
    print(f"Extras     : {', '.join(p.name for p in attachment_paths) or '(none)'}")

    if args.dry_run:
        print("\n[DRY RUN] Recipients:")
        for r in recipients:
            print(f"  {r}")
        return 0

    data = {
        "email": args.account,
        "app_password": args.app_password,
        "recipients": ",".join(recipients),
        "subject": args.subject,
        "body": body,
    }
    files: list[tuple[str, tuple[str, bytes]]] = []
    if resume_path:
        files.append(("resume", _file_part(resume_path)))
    for path in attachment_paths:
        files.append(("attachments", _file_part(path)))

    # Allow for the per-message timeout and pacing delay on every recipient
    timeout = 30 + 10 * len(recipients)
    try:
        response = httpx.post(endpoint, data=data, files=files, timeout=timeout)
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  uvicorn app.main:app --reload --app-dir backend",
            file=sys.stderr,
        )
        return 1

    _print_response(response)
    if response.status_code != 200:
        return 1

    report = response.json()
    sent = [r["recipient"] for r in report.get("results", []) if r.get("status") == "success"]
    if sent:
        history.record_batch(args.account, sent)
        print(f"\nRecorded {len(sent)} recipient(s) in {args.history_file}")
    return 0 if report.get("summary", {}).get("failed", 0) == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
