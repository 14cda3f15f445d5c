"""
Run a scrape session from CLI until it completes.
"""

from __future__ import annotations

import argparse
import json
import logging

from app.domain.scrape_session import StepResult
from app.scraping.errors import SessionNotFoundError
from app.services.scrape_orchestrator import drive_session
from app.services.scrape_runtime import get_scrape_runtime
from app.validators.scrape_session_validator import ScrapeRequestValidationError


def _split(values: list[str]) -> list[str]:
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


def main() -> int:
    parser = argparse.ArgumentParser(description="Start or resume a scrape session and drive it to the end.")
    parser.add_argument("--town", dest="towns", action="append", default=[], help="Town (repeat or comma-separate).")
    parser.add_argument(
        "--industry",
        dest="industries",
        action="append",
        default=[],
        help="Industry (repeat or comma-separate).",
    )
    parser.add_argument("--session-id", dest="session_id", default=None, help="Resume an existing session.")
    parser.add_argument("--owner", dest="owner", default="cli", help="Owner id recorded on new sessions.")
    parser.add_argument("--simultaneous-industries", type=int, default=None)
    parser.add_argument("--simultaneous-lookups", type=int, default=None)
    parser.add_argument("--max-steps", type=int, default=None, help="Stop after this many steps.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    runtime = get_scrape_runtime()

    session_id = args.session_id
    if session_id is None:
        config = {
            key: value
            for key, value in {
                "simultaneous_industries": args.simultaneous_industries,
                "simultaneous_lookups": args.simultaneous_lookups,
            }.items()
            if value is not None
        }
        try:
            session = runtime.session_service.start(
                owner_id=args.owner,
                towns=_split(args.towns),
                industries=_split(args.industries),
                config=config,
            )
        except ScrapeRequestValidationError as exc:
            print(json.dumps(exc.to_dict(), indent=2))
            return 2
        session_id = session.id

    def _report(result: StepResult) -> None:
        print(json.dumps({"session_id": session_id, **result.to_dict()}))

    try:
        result = drive_session(runtime.orchestrator, session_id, max_steps=args.max_steps, on_step=_report)
    except SessionNotFoundError as exc:
        print(json.dumps({"error": str(exc)}))
        return 1

    session = runtime.session_service.get(session_id)
    payload = {
        "session_id": session_id,
        "status": result.status,
        "businesses": [business.to_dict() for business in session.results],
    }
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
