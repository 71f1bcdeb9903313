"""Scan router: decides between viewing a stored asset and creating one."""

from typing import Annotated

from fastapi import APIRouter, Depends

from asset_tracker.core.dependencies import get_asset_service, http_error_for
from asset_tracker.core.errors import AssetTrackerError
from asset_tracker.core.service import AssetService, ScanOutcome
from asset_tracker.schemas.asset import AssetResponse, ScanFlow, ScanResponse

router = APIRouter(prefix="/api/scan", tags=["scan"])


def _scan_response(outcome: ScanOutcome) -> ScanResponse:
    return ScanResponse(
        found=outcome.flow is ScanFlow.VIEW,
        flow=outcome.flow,
        code=outcome.code,
        asset=AssetResponse.model_validate(outcome.asset) if outcome.asset is not None else None,
    )


@router.get("", response_model=ScanResponse)
async def start_manual_entry(
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> ScanResponse:
    """Manual "new asset" entry: no code, one is allocated on submit."""
    return _scan_response(service.start_manual_entry())


@router.get("/{code}", response_model=ScanResponse)
async def scan_code(
    code: str,
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> ScanResponse:
    """Resolve a scanned code.

    Returns the stored asset with flow ``view`` when the code matches exactly,
    otherwise flow ``guided_create`` with the code to pre-fill the creation form.
    """
    try:
        outcome = service.scan(code)
    except AssetTrackerError as e:
        raise http_error_for(e) from e
    return _scan_response(outcome)
