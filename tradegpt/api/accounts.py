"""Smart account registry lookups."""

from fastapi import APIRouter, Depends, HTTPException
from web3 import Web3

from tradegpt.api.deps import get_chain
from tradegpt.schemas.trade import validate_address
from tradegpt.services.chain_client import ChainClient

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


def _owner_address(owner: str) -> str:
    try:
        return validate_address(owner)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"owner {e}") from e


@router.get("/smart-account/{owner}")
async def smart_account(owner: str, chain: ChainClient = Depends(get_chain)):
    accounts = await chain.get_accounts(_owner_address(owner))
    return {
        "hasAccount": len(accounts) > 0,
        "smartAccount": accounts[0] if accounts else None,
        "totalAccounts": len(accounts),
        "accounts": accounts,
    }


@router.get("/smart-account/{owner}/balance")
async def smart_account_balance(owner: str, chain: ChainClient = Depends(get_chain)):
    accounts = await chain.get_accounts(_owner_address(owner))
    if not accounts:
        return {"hasAccount": False, "balance": "0"}

    account = accounts[0]
    balance = await chain.get_balance(account)
    return {
        "hasAccount": True,
        "smartAccount": account,
        "balance": str(balance),
        "balanceFormatted": str(Web3.from_wei(balance, "ether")),
    }
