"""HTTP route definitions for the service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas import (
    DetectRequest,
    DetectResponse,
    MappingPayload,
    MappingResponse,
    PreviewPoint,
    PreviewRangesModel,
    PreviewRequest,
    PreviewResponse,
)
from services.mapping_service import (
    InvalidMappingError,
    MappingService,
    build_default_mapping_service,
)

router = APIRouter()


def get_mapping_service() -> MappingService:
    return build_default_mapping_service()


@router.get(
    "/datasets/{dataset_id}/mapping",
    response_model=MappingResponse,
    response_model_by_alias=True,
    summary="Fetch the payload mapping for a dataset, creating the default one if absent.",
)
async def get_mapping(
    dataset_id: str,
    service: MappingService = Depends(get_mapping_service),
) -> MappingResponse:
    return MappingResponse.from_record(service.get_mapping(dataset_id))


@router.patch(
    "/datasets/{dataset_id}/mapping",
    response_model=MappingResponse,
    response_model_by_alias=True,
    summary="Replace the payload mapping for a dataset.",
)
async def update_mapping(
    dataset_id: str,
    payload: MappingPayload,
    service: MappingService = Depends(get_mapping_service),
) -> MappingResponse:
    try:
        record = service.update_mapping(dataset_id, payload.to_configuration())
    except InvalidMappingError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return MappingResponse.from_record(record)


@router.delete(
    "/datasets/{dataset_id}/mapping",
    response_model=MappingResponse,
    response_model_by_alias=True,
    summary="Reset the payload mapping for a dataset to the defaults.",
)
async def reset_mapping(
    dataset_id: str,
    service: MappingService = Depends(get_mapping_service),
) -> MappingResponse:
    return MappingResponse.from_record(service.reset_mapping(dataset_id))


@router.post(
    "/datasets/{dataset_id}/mapping/detect",
    response_model=DetectResponse,
    response_model_by_alias=True,
    summary="Suggest a mapping from a sample payload.",
)
async def detect_mapping(
    dataset_id: str,
    request: DetectRequest,
    service: MappingService = Depends(get_mapping_service),
) -> DetectResponse:
    if request.payload is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payload is required.",
        )
    try:
        result = service.detect_mapping(dataset_id, request.payload, apply=request.apply_to_dataset)
    except InvalidMappingError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return DetectResponse(
        detected=result.detected,
        mapping=MappingPayload.from_configuration(result.mapping),
        applied=result.applied,
    )


@router.post(
    "/datasets/{dataset_id}/mapping/preview",
    response_model=PreviewResponse,
    response_model_by_alias=True,
    summary="Normalize sample messages with a mapping without storing anything.",
)
async def preview_mapping(
    dataset_id: str,
    request: PreviewRequest,
    service: MappingService = Depends(get_mapping_service),
) -> PreviewResponse:
    if request.mapping is not None:
        config = request.mapping.to_configuration()
    else:
        config = service.get_configuration(dataset_id)
    result = service.preview(config, request.messages)
    return PreviewResponse(
        points=[PreviewPoint.from_point(point) for point in result.points],
        errors=result.errors,
        ranges=PreviewRangesModel.from_ranges(result.ranges),
        skipped=result.skipped,
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
