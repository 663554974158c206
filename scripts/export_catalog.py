from __future__ import annotations

import argparse
from pathlib import Path

import orjson

from levelup_engine.catalog import RuleCatalog, catalog_payload


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Write the achievement catalog as JSON (or validate an existing file)."
    )
    parser.add_argument(
        "--out",
        default="artifacts/catalog/achievements.json",
        help="Output path (default: artifacts/catalog/achievements.json).",
    )
    parser.add_argument(
        "--validate",
        default=None,
        help="Validate this catalog file instead of exporting the built-in one.",
    )
    args = parser.parse_args()

    if args.validate:
        catalog = RuleCatalog.from_file(args.validate)
        print(
            orjson.dumps(
                {"ok": True, "path": str(args.validate), "count": len(catalog), "catalog_hash": catalog.catalog_hash()}
            ).decode("utf-8")
        )
        return

    catalog = RuleCatalog()
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(
        orjson.dumps(
            catalog_payload(catalog.definitions()),
            option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS,
        )
    )
    print(
        orjson.dumps(
            {"ok": True, "path": str(out), "count": len(catalog), "catalog_hash": catalog.catalog_hash()}
        ).decode("utf-8")
    )


if __name__ == "__main__":
    main()
