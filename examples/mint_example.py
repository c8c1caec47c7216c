#!/usr/bin/env python3
"""
Simple example of using the TouristID SDK.
"""
import asyncio
import os
import time

from touristid_sdk import MintError, TouristIDClient, normalize_commitment


async def main():
    """
    Demonstrate basic usage of the TouristIDClient.

    This example shows how to:
    1. Initialize the client from the environment
    2. Mint a Tourist ID valid for 30 days
    3. Read the record back
    """
    if not os.environ.get("RPC_URL"):
        print("ERROR: RPC_URL environment variable is required")
        return
    if not os.environ.get("GOVERNMENT_PRIVATE_KEY"):
        print("ERROR: GOVERNMENT_PRIVATE_KEY environment variable is required")
        return

    client = TouristIDClient.from_env()
    status = await client.get_status()
    print(f"Chain {status.chain_id}, block {status.block_number}")
    print(f"Issuer {status.issuer_address} holds {status.issuer_balance_ether} ETH")

    # Only the hash of the identity document goes on-chain
    commitment = normalize_commitment("passport:X1234567:IN")
    valid_until = int(time.time()) + 30 * 24 * 3600

    try:
        result = await client.mint_tourist_id(
            commitment,
            valid_until,
            "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG",
            on_stage=lambda stage: print(f"  stage: {stage.value}")
        )
    except MintError as e:
        print(f"Mint failed at {e.stage.value}: {e.reason}")
        if e.transaction_hash:
            print(f"Check transaction {e.transaction_hash} before retrying")
        return

    print(f"Tourist ID minted!")
    print(f"Transaction hash: {result.transaction_hash}")
    print(f"Token ID: {result.token_id}{' (unconfirmed guess)' if result.low_confidence else ''}")

    if result.token_id is not None:
        record = await client.get_tourist_record(result.token_id)
        print(f"Record valid: {record.is_valid}, metadata: {record.metadata_reference}")


if __name__ == "__main__":
    asyncio.run(main())
