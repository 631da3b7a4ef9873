"""Program-derived address (PDA) resolution."""
from __future__ import annotations

import logging
from functools import lru_cache

from solders.pubkey import Pubkey

from .errors import DerivationError
from .models import DEFAULT_PUBKEY

logger = logging.getLogger(__name__)

KAMINO_PROGRAM_ID = Pubkey.from_string("KLend2g3cP87fffoy8q1mQqGKjrxjC8boSyAYavgmjD")
MARGINFI_PROGRAM_ID = Pubkey.from_string("MFv2hWf31Z9kbCa1snEPYctwafyhdvnV7FZnsebVacA")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)
SYSVAR_INSTRUCTIONS_ID = Pubkey.from_string(
    "Sysvar1nstructions1111111111111111111111111"
)

# Namespace tag -> seed prefix, per owning program.
SEED_TABLES: dict[Pubkey, dict[str, bytes]] = {
    KAMINO_PROGRAM_ID: {
        "authority": b"lma",
        "liquidity": b"liquidity",
        "collateral": b"collateral",
        "fee-receiver": b"fee_receiver",
    },
    MARGINFI_PROGRAM_ID: {
        "vault-authority": b"liquidity_vault_auth",
        "liquidity-vault": b"liquidity_vault",
        "insurance-vault": b"insurance_vault",
    },
}


def register_seed_table(program_id: Pubkey, table: dict[str, bytes]) -> None:
    """Install seed prefixes for a program deployed under another id."""
    SEED_TABLES[program_id] = dict(table)
    derive_program_address.cache_clear()


@lru_cache(maxsize=4096)
def derive_program_address(tag: str, seed: Pubkey, program_id: Pubkey) -> Pubkey:
    """Resolve ``tag`` through the program's seed table and derive the PDA.

    Raises:
        DerivationError: unknown program, unknown tag, or a default seed.
    """
    table = SEED_TABLES.get(program_id)
    if table is None:
        raise DerivationError(f"No seed table for program {program_id}")
    prefix = table.get(tag)
    if prefix is None:
        raise DerivationError(f"Unknown seed tag '{tag}' for program {program_id}")
    if seed == DEFAULT_PUBKEY:
        raise DerivationError(f"Cannot derive '{tag}' from the default address")

    address, _bump = Pubkey.find_program_address([prefix, bytes(seed)], program_id)
    return address


@lru_cache(maxsize=4096)
def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """SPL associated token account of ``owner`` for ``mint``."""
    if owner == DEFAULT_PUBKEY or mint == DEFAULT_PUBKEY:
        raise DerivationError("Associated token account needs a real owner and mint")
    address, _bump = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address
