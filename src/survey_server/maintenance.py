"""Maintenance CLI — ``survey-admin``.

Standalone commands that connect to the database and run questionnaire
seeding or dataset operations.  Intended for deploy scripts and one-off
maintenance.

Examples::

    # Load v1/questionnaire.yaml into survey_phases / survey_questions
    survey-admin seed

    # Seed from another directory
    survey-admin seed --dir /srv/questionnaires/2026

    # Soft-delete every active respondent (reversible)
    survey-admin clear --confirm "saya setuju"

    # Bring cleared respondents back
    survey-admin restore --confirm "saya setuju"

    # Permanently delete cleared respondents and all their data
    survey-admin purge --confirm "saya setuju"

    # Print a bcrypt hash for ADMIN_PASSWORD_HASH
    survey-admin hash-password
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys

logger = logging.getLogger(__name__)


async def run_seed(questionnaire_dir: str | None = None) -> dict[str, int]:
    """Load the questionnaire YAML and upsert it into the database."""
    # Lazy imports to avoid loading DB machinery at module import time
    from survey_db.engine import dispose_engine, get_session_factory
    from survey_flow.admin import AdminService
    from survey_flow.store import QuestionnaireStore

    store = QuestionnaireStore(questionnaire_dir=questionnaire_dir)
    store.load()

    service = AdminService()
    factory = get_session_factory()
    try:
        async with factory() as db:
            counts = await service.seed_questionnaire(db, store.phases)
            await db.commit()
        return counts
    finally:
        await dispose_engine()


async def run_dataset_action(action: str, confirmation: str | None) -> int:
    """Run ``clear`` / ``restore`` / ``purge`` and return the affected row count."""
    from survey_db.engine import dispose_engine, get_session_factory
    from survey_flow.admin import AdminService

    service = AdminService()
    operations = {
        "clear": service.clear_data,
        "restore": service.restore_data,
        "purge": service.permanent_delete,
    }
    factory = get_session_factory()
    try:
        async with factory() as db:
            result = await operations[action](db, confirmation)
            await db.commit()
        logger.info("%s complete: affected=%d", result.action, result.affected)
        return result.affected
    finally:
        await dispose_engine()


def _hash_password(password: str | None) -> str:
    from survey_server.security import get_password_hash

    if password is None:
        password = getpass.getpass("Admin password: ")
        if password != getpass.getpass("Repeat password: "):
            raise SystemExit("Passwords do not match")
    if not password:
        raise SystemExit("Password must not be empty")
    return get_password_hash(password)


def cli() -> None:
    """Console-script entry point: ``survey-admin``."""
    parser = argparse.ArgumentParser(
        prog="survey-admin",
        description="Survey database maintenance.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Upsert the questionnaire YAML into the database")
    seed.add_argument(
        "--dir",
        default=None,
        help="Directory holding questionnaire.yaml (default: v1/ at the repo root)",
    )

    for name, help_text in (
        ("clear", "Soft-delete every active respondent"),
        ("restore", "Restore soft-deleted respondents"),
        ("purge", "Permanently delete soft-deleted respondents"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument(
            "--confirm",
            default=None,
            help="Confirmation phrase (default phrase: $ADMIN_CONFIRMATION_PHRASE)",
        )

    hp = sub.add_parser("hash-password", help="Print a bcrypt hash for ADMIN_PASSWORD_HASH")
    hp.add_argument("--password", default=None, help="Password (prompted when omitted)")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if args.command == "hash-password":
        print(_hash_password(args.password))
        sys.exit(0)

    # Import here so hash-password works without DB dependencies configured
    from survey_flow.errors import SurveyError

    try:
        if args.command == "seed":
            counts = asyncio.run(run_seed(args.dir))
            print(
                f"Seeded {counts['phases']} phases, {counts['questions']} questions "
                f"({counts['retired']} retired)"
            )
        else:
            affected = asyncio.run(run_dataset_action(args.command, args.confirm))
            print(f"Affected respondents: {affected}")
    except SurveyError as exc:
        print(f"error: {exc.public_message}", file=sys.stderr)
        sys.exit(2)
    sys.exit(0)
