#!/usr/bin/env python3
"""Escrow invariant checks against config and persisted state."""

import json
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
PARAMS_PATH = ROOT / "config" / "escrow_params.json"
STATE_PATH = ROOT / "data" / "state.json"

MAX_AMOUNT = 2**256 - 1


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_params(params: dict, errors: list[str]) -> None:
    escrow = params.get("escrow")
    if escrow is None:
        errors.append("escrow_params.json missing 'escrow' section")
        return
    max_fee = escrow.get("max_fee_bps", 0)
    default_fee = escrow.get("default_platform_fee_bps", 0)
    if not 0 <= max_fee <= 10_000:
        errors.append(f"max_fee_bps must be in [0, 10000], got {max_fee}")
    if max_fee > 500:
        errors.append(f"max_fee_bps must not exceed 500 (5%), got {max_fee}")
    if not 0 <= default_fee <= max_fee:
        errors.append(
            f"default_platform_fee_bps ({default_fee}) must be in [0, max_fee_bps]"
        )
    if escrow.get("max_purpose_length", 0) <= 0:
        errors.append("max_purpose_length must be positive")
    if escrow.get("default_reference_price", 0) <= 0:
        errors.append("default_reference_price must be positive")


def check_state(state: dict, max_fee_bps: int, errors: list[str]) -> None:
    fees = state.get("fees", {})
    bps = fees.get("platform_fee_bps", 0)
    if not 0 <= bps <= max_fee_bps:
        errors.append(f"platform_fee_bps {bps} outside [0, {max_fee_bps}]")
    if not fees.get("fee_collector"):
        errors.append("fee_collector is empty")

    registry = state.get("registry", {})
    ledger = state.get("ledger", {})
    records = registry.get("remittances", [])
    ids = [r["remittance_id"] for r in records]
    if ids != list(range(len(ids))):
        errors.append("remittance ids are not a contiguous zero-based sequence")
    if registry.get("next_id") != len(ids):
        errors.append(
            f"next_id {registry.get('next_id')} != record count {len(ids)}"
        )

    for record in records:
        rid = record["remittance_id"]
        label = f"remittance {rid}"
        if record["is_released"] and record["is_cancelled"]:
            errors.append(f"{label} is both released and cancelled")
        if record["target_amount"] <= 0:
            errors.append(f"{label} target_amount must be positive")
        if not 0 <= record["current_amount"] <= MAX_AMOUNT:
            errors.append(f"{label} current_amount out of range")

        entry = ledger.get(str(rid))
        if entry is None:
            errors.append(f"{label} has no ledger")
            continue
        contributors = entry["contributors"]
        if len(contributors) != len(set(contributors)):
            errors.append(f"{label} contributor list has duplicates")
        if set(entry["entries"]) != set(contributors):
            errors.append(f"{label} ledger entries do not match contributor list")

        ledger_total = sum(entry["entries"].values())
        if record["is_cancelled"]:
            if ledger_total != 0:
                errors.append(f"{label} cancelled but ledger not settled")
            refunded = sum(r["amount"] for r in record.get("refunds", []))
            if refunded != record["current_amount"]:
                errors.append(
                    f"{label} refunds {refunded} != pooled {record['current_amount']}"
                )
        elif ledger_total != record["current_amount"]:
            errors.append(
                f"{label} ledger total {ledger_total} != current_amount "
                f"{record['current_amount']}"
            )

        if record["is_released"]:
            fee = record.get("platform_fee")
            payout = record.get("recipient_payout")
            if fee is None or payout is None or fee + payout != record["current_amount"]:
                errors.append(f"{label} fee + payout != pooled amount")
            if record["current_amount"] < record["target_amount"]:
                errors.append(f"{label} released below target")

        if rid not in registry.get("by_creator", {}).get(record["creator"], []):
            errors.append(f"{label} missing from creator index")
        if rid not in registry.get("by_recipient", {}).get(record["recipient"], []):
            errors.append(f"{label} missing from recipient index")


def check(params_path: Path = PARAMS_PATH, state_path: Path = STATE_PATH) -> int:
    params = load_json(params_path)
    errors: list[str] = []
    check_params(params, errors)

    if state_path.exists():
        max_fee = params.get("escrow", {}).get("max_fee_bps", 500)
        check_state(load_json(state_path), max_fee, errors)

    if errors:
        print("Invariant check FAILED:")
        for error in errors:
            print(f"  - {error}")
        return 1
    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    sys.exit(check())
