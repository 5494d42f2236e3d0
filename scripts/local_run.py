#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from upsell_navigator.adapters.crew.client import CrewClient
from upsell_navigator.app.config.loader import load_settings
from upsell_navigator.engine.normalize.decode import decode_upload
from upsell_navigator.engine.normalize.headers import normalize_csv
from upsell_navigator.engine.submission import AnalysisSubmission, submit_analysis
from upsell_navigator.persistence.memory_runs import InMemoryRuns


def read_bytes(path: str | None) -> bytes | None:
    if not path:
        return None
    return Path(path).read_bytes()


async def submit(args: argparse.Namespace) -> dict:
    settings = load_settings(args.config)
    client = CrewClient.from_settings(settings)
    runs = InMemoryRuns()
    submission = AnalysisSubmission(
        live_name=args.live_name,
        sales_result=args.sales_result,
        participants_csv=read_bytes(args.participants),
        chat_txt=read_bytes(args.chat),
        transcription_txt=read_bytes(args.transcription),
    )
    try:
        record = await submit_analysis(submission, settings=settings, client=client, runs=runs)
    finally:
        await client.aclose()
    return record.to_dict()


def main() -> None:
    parser = argparse.ArgumentParser(description="Preview or submit a live performance analysis")
    parser.add_argument("--config", help="Path to settings YAML")
    parser.add_argument("--participants", required=True, help="Participants CSV export")
    parser.add_argument("--chat", help="Live chat text file")
    parser.add_argument("--transcription", help="Transcription text file")
    parser.add_argument("--live-name", help="Name of the live session")
    parser.add_argument("--sales-result", help="Sales result of the live session")
    parser.add_argument(
        "--submit",
        action="store_true",
        help="Send to the analysis service instead of printing the normalized CSV",
    )
    args = parser.parse_args()

    if not args.submit:
        settings = load_settings(args.config)
        text = decode_upload(
            Path(args.participants).read_bytes(),
            slot="participants_csv",
            encoding=settings.upload_encoding,
        )
        print(normalize_csv(text), end="")
        return

    print(json.dumps(asyncio.run(submit(args)), indent=2))


if __name__ == "__main__":
    main()
