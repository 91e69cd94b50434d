"""
Generate a batch of random quiz articles concurrently and save them
"""
import os
import sys
import json
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from veritas.batch import generate_game_batch

DATA_DIR = Path(os.getenv("DATA_DIR", "data"))

if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    count = int(sys.argv[1]) if len(sys.argv) > 1 else 5
    concurrency = int(os.getenv("BATCH_CONCURRENCY", "0")) or None

    result = asyncio.run(generate_game_batch(count, concurrency=concurrency))
    print(f"Generated {result.succeeded} of {result.requested} requested articles")

    if not result.items:
        raise SystemExit("No articles could be generated")

    DATA_DIR.mkdir(parents=True, exist_ok=True)
    batch_file = DATA_DIR / "generated_batch.json"
    with batch_file.open("w", encoding="utf-8") as fhandle:
        json.dump(result.model_dump(by_alias=True), fhandle, ensure_ascii=False, indent=2)
