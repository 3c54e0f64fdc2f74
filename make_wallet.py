"""
make_wallet.py - Create a deployer keypair file for NOSANA_KEYPAIR_PATH

    python make_wallet.py                    # writes nosana_wallet.json
    python make_wallet.py my.json --export   # also prints the base58 key for NOSANA_PRIVATE_KEY
"""

import argparse
import json
import os

import base58
from solders.keypair import Keypair


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create a Solana keypair file for nosdeploy")
    parser.add_argument("path", nargs="?", default="nosana_wallet.json")
    parser.add_argument("--export", action="store_true", help="print the base58 private key")
    args = parser.parse_args(argv)

    if os.path.exists(args.path):
        print(f"Refusing to overwrite {args.path}")
        return 1

    kp = Keypair()
    # bytes(kp) is the full 64-byte keypair (seed + pubkey)
    raw64 = bytes(kp)
    with open(args.path, "w", encoding="utf-8") as f:
        json.dump({"publicKey": list(bytes(kp.pubkey())), "privateKey": list(raw64)}, f)

    print("Created:", os.path.abspath(args.path))
    print("PUBKEY:", kp.pubkey())
    print("Fund it with SOL and NOS, then set NOSANA_KEYPAIR_PATH to the file above.")
    if args.export:
        print("NOSANA_PRIVATE_KEY:", base58.b58encode(raw64).decode())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
