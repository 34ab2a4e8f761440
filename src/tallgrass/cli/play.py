from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from tallgrass.cli.pygame_viewer import run_pygame_viewer
from tallgrass.content.collection import DEFAULT_COLLECTION_PATH, JsonCreatureStore
from tallgrass.content.creatures import (
    DEFAULT_CREATURE_CATALOG_PATH,
    FALLBACK_PARTY,
    load_creature_catalog_json,
)

DEFAULT_USER_ID = "player"
DEFAULT_SEED = 42


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tallgrass-play", description="tallgrass launcher.")
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Master seed for map and encounters.")
    parser.add_argument("--user-id", default=DEFAULT_USER_ID, help="Collection owner to play as.")
    parser.add_argument(
        "--collection-path",
        default=DEFAULT_COLLECTION_PATH,
        help="Collection JSON; created with a starter party when missing.",
    )
    parser.add_argument("--catalog-path", default=DEFAULT_CREATURE_CATALOG_PATH, help="Wild creature catalog JSON.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    return parser


def _ensure_collection_exists(*, collection_path: str, catalog_path: str, user_id: str) -> None:
    collection_file = Path(collection_path)
    if collection_file.exists():
        return
    store = JsonCreatureStore(collection_file, load_creature_catalog_json(catalog_path))
    store.seed_user(user_id, list(FALLBACK_PARTY))
    print(f"[tallgrass.play] created collection path={collection_file} user={user_id}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _ensure_collection_exists(
        collection_path=args.collection_path,
        catalog_path=args.catalog_path,
        user_id=args.user_id,
    )
    return run_pygame_viewer(
        seed=args.seed,
        user_id=args.user_id,
        collection_path=args.collection_path,
        catalog_path=args.catalog_path,
        headless=args.headless,
    )


if __name__ == "__main__":
    raise SystemExit(main())
