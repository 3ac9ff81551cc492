"""Fee schedule endpoint, public, no auth required."""

from fastapi import APIRouter

from gigescrow.services.fees import calculate_platform_fee, get_fee_schedule

router = APIRouter(tags=["fees"])


@router.get("/fees")
async def fee_schedule(amount: int | None = None) -> dict:
    """Current fee schedule. Pass ``amount`` (minor units) to preview the split."""
    schedule = get_fee_schedule()
    if amount is not None and amount > 0:
        schedule["preview"] = calculate_platform_fee(amount).to_dict()
    return schedule
