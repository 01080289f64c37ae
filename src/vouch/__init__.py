# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Vouch Contributors

"""Vouch - an append-only ledger for peer-verified posts.

Posts are submitted already encrypted, stored permanently, and verified
by other identities (at most once per identity per post). Creating and
verifying posts earns token rewards. A shared fee pool takes deposits,
pays sponsored disbursements, and reserves a platform fee share.

Architecture:
  Ledger (append-only posts, owns the verification registry)
    → RewardPolicy (ledger events → reward instructions)
    → TokenAccountService (external, applies rewards)
  FeePool (deposits, sponsorship, platform fee)
    → FundsTransferService (external, moves funds)

Entry point for programmatic use: ``vouch.core.service.VouchService``.
"""

__version__ = "0.1.0"

from . import (
    core as core,
)
