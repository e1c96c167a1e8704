#!/usr/bin/env python3
"""
ledger_audit.py - Check that every note's version ledger is exactly 1..Version.

Usage examples:
  python scripts/ledger_audit.py
  python scripts/ledger_audit.py --note-id 42
  python scripts/ledger_audit.py --env-file /path/to/.env --json

Flags:
  --env-file PATH
    Load environment variables from PATH before connecting (default: .env).
  --note-id N
    Audit a single note instead of all notes.
  --json
    Output findings as JSON.

Exits 1 when any note has missing or duplicated ledger entries, 0 otherwise.
"""
import argparse
import json
import os
import sys
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.append(str(Path(__file__).resolve().parents[1] / "backend"))

from app.db import BuildConnectionUrlFromEnv  # noqa: E402
from app.modules.auth import models as auth_models  # noqa: E402,F401
from app.modules.notes.services.version_service import FindLedgerGaps, LedgerGap  # noqa: E402

DEFAULT_ENV_PATH = ".env"


def LoadEnvFile(EnvPath: str) -> None:
    if not EnvPath:
        return
    if not os.path.exists(EnvPath):
        if EnvPath == DEFAULT_ENV_PATH:
            return
        raise RuntimeError(f"Env file not found: {EnvPath}")
    load_dotenv(dotenv_path=EnvPath)


def ParseArgs() -> argparse.Namespace:
    Parser = argparse.ArgumentParser(description="Audit note version ledgers for gaps and duplicates.")
    Parser.add_argument(
        "--env-file",
        default=DEFAULT_ENV_PATH,
        help="Path to a .env file with DATABASE_URL or SQLSERVER_* settings.",
    )
    Parser.add_argument("--note-id", type=int, default=None, help="Audit only this note.")
    Parser.add_argument("--json", action="store_true", help="Output findings as JSON.")
    return Parser.parse_args()


def GapToDict(Gap: LedgerGap) -> dict:
    return {
        "noteId": Gap.NoteId,
        "currentVersion": Gap.CurrentVersion,
        "missing": Gap.Missing,
        "duplicates": Gap.Duplicates,
    }


def PrintGaps(Gaps: List[LedgerGap]) -> None:
    if not Gaps:
        print("All note ledgers are complete.")
        return
    for Gap in Gaps:
        print(
            f"note {Gap.NoteId}: version={Gap.CurrentVersion} "
            f"missing={Gap.Missing or '-'} duplicates={Gap.Duplicates or '-'}"
        )
    print(f"{len(Gaps)} note(s) with ledger problems.")


def Main() -> int:
    Args = ParseArgs()
    LoadEnvFile(Args.env_file)

    Engine = create_engine(BuildConnectionUrlFromEnv())
    SessionLocal = sessionmaker(bind=Engine)
    Db = SessionLocal()
    try:
        Gaps = FindLedgerGaps(Db, Args.note_id)
    finally:
        Db.close()
        Engine.dispose()

    if Args.json:
        print(json.dumps([GapToDict(Gap) for Gap in Gaps], indent=2))
    else:
        PrintGaps(Gaps)
    return 1 if Gaps else 0


if __name__ == "__main__":
    raise SystemExit(Main())
