#!/usr/bin/env python
"""Generate an operating account for the faucet.

Creates a fresh EVM key, optionally encrypts it with a Fernet key, prints the
.env lines to configure the faucet with, and reports the current balance when
RPC_URL is reachable.
"""

import argparse
import asyncio

from eth_account import Account
from web3 import Web3

from faucet.config import settings
from faucet.errors import ChainQueryError
from faucet.services import ChainService
from faucet.utils.encryption import EncryptionService

# ANSI color codes
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_banner():
    """Print banner."""
    print(
        f"""
{BLUE}================================================
       Faucet Operating Account Generator
================================================{RESET}
    """
    )


def generate_account():
    """Generate a new operating account."""
    print(f"{YELLOW}Generating new operating account...{RESET}")

    account = Account.create()

    print(f"{GREEN}[OK] Account generated successfully!{RESET}")
    print(f"\n{BLUE}Account Details:{RESET}")
    print(f"  Address: {account.address}")

    return account


def build_env_lines(private_key: str, encrypt: bool) -> list[str]:
    """Render the settings lines for the generated key."""
    if not encrypt:
        return [f"PRIVATE_KEY={private_key}"]

    encryption_key = settings.ENCRYPTION_KEY or EncryptionService.generate_key()
    encrypted = EncryptionService(encryption_key).encrypt(private_key)
    return [
        f"PRIVATE_KEY={encrypted}",
        "PRIVATE_KEY_ENCRYPTED=true",
        f"ENCRYPTION_KEY={encryption_key}",
    ]


async def check_balance(private_key: str):
    """Check the account balance on the configured network."""
    if not settings.RPC_URL:
        print(f"\n{YELLOW}RPC_URL not set, skipping balance check{RESET}")
        return None

    print(f"\n{YELLOW}Checking balance on {settings.NETWORK_NAME}...{RESET}")
    chain = ChainService(settings.RPC_URL, private_key)
    try:
        balance = await chain.get_balance()
        print(f"{GREEN}[OK] Balance: {balance} {settings.CURRENCY_SYMBOL}{RESET}")
        return balance
    except ChainQueryError as e:
        print(f"{RED}[ERR] {e}{RESET}")
        return None
    finally:
        await chain.close()


async def main():
    """Execute the main function."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--encrypt", action="store_true", help="store the key Fernet-encrypted")
    args = parser.parse_args()

    print_banner()
    account = generate_account()
    private_key = Web3.to_hex(account.key)

    print(f"\n{BLUE}Add to your .env:{RESET}")
    for line in build_env_lines(private_key, args.encrypt):
        print(f"  {line}")

    await check_balance(private_key)

    print(f"\n{BLUE}Usage Instructions:{RESET}")
    print(f"1. Fund {account.address} with testnet {settings.CURRENCY_SYMBOL}")
    print("2. Keep the key out of version control")
    print(f"\n{GREEN}Operating account ready for use!{RESET}")


if __name__ == "__main__":
    asyncio.run(main())
