"""
Command line entry point: status checks, record lookups and minting.

Usage:
    python -m touristid_sdk status
    python -m touristid_sdk record 7
    python -m touristid_sdk list --page 1 --limit 20
    python -m touristid_sdk mint --commitment 0x... --valid-until 1767225600 --metadata Qm...
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from .client import TouristIDClient
from .exceptions import MintError, TouristIDError
from .models import DEFAULT_ISSUER_LABEL
from .version import __version__

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="touristid",
        description="Issue and look up Tourist IDs. Configuration is read from the environment."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show chain, contract and issuer status")

    record = sub.add_parser("record", help="Show one Tourist ID record")
    record.add_argument("token_id", type=int)

    listing = sub.add_parser("list", help="List currently valid Tourist IDs")
    listing.add_argument("--page", type=int, default=1)
    listing.add_argument("--limit", type=int, default=20)

    mint = sub.add_parser("mint", help="Mint a new Tourist ID")
    mint.add_argument("--commitment", required=True, help="32-byte hex digest or raw value to hash")
    mint.add_argument("--valid-until", type=int, required=True, help="Unix timestamp (seconds)")
    mint.add_argument("--metadata", required=True, help="Metadata CID")
    mint.add_argument("--issuer", default=DEFAULT_ISSUER_LABEL, help="Issuer label")
    return parser


async def _run(args: argparse.Namespace, client: TouristIDClient) -> Any:
    if args.command == "status":
        status = await client.get_status()
        owner = await client.get_contract_owner() if client.contract else None
        return {**status.model_dump(), "contract_owner": owner}
    if args.command == "record":
        record = await client.get_tourist_record(args.token_id)
        if record is None:
            raise TouristIDError(f"Tourist ID {args.token_id} not found")
        return record.model_dump()
    if args.command == "list":
        return (await client.list_active_tourist_ids(args.page, args.limit)).model_dump()
    if args.command == "mint":
        result = await client.mint_tourist_id(
            args.commitment,
            args.valid_until,
            args.metadata,
            args.issuer,
            on_stage=lambda stage: logger.info(f"stage: {stage.value}")
        )
        return result.to_dict()
    raise ValueError(f"Unknown command {args.command}")


def main(argv: Optional[List[str]] = None, client: Optional[TouristIDClient] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr
    )

    try:
        client = client or TouristIDClient.from_env()
        output = asyncio.run(_run(args, client))
    except MintError as e:
        print(json.dumps(e.to_dict(), indent=2))
        return 1
    except (TouristIDError, ValueError) as e:
        print(json.dumps({"error": type(e).__name__, "reason": str(e)}, indent=2))
        return 1

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
